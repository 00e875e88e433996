import json
from typing import AsyncIterator, Callable, Dict, Optional

import httpx
from fastapi.responses import StreamingResponse

from app.config.logger import get_logger
from app.config.settings import Settings
from app.core.errors import ConfigurationError, InvalidRequest, TransportError, UpstreamError
from app.core.ledger import UsageLedger, UsageTracker
from app.schemas.dj import GenerateRequest
from app.schemas.usage import UsageContext

LOGGER = get_logger("relay")

DONE_FRAME = b"data: [DONE]\n\n"
STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


class StreamRelay:
    """Bridges a client event stream to one streaming upstream generation call."""

    def __init__(
        self,
        settings: Settings,
        ledger: UsageLedger,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
    ):
        self._settings = settings
        self._ledger = ledger
        self._client_factory = client_factory or self._default_client

    def _default_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=httpx.Timeout(self._settings.upstream_timeout_seconds))

    async def open(self, payload: GenerateRequest) -> StreamingResponse:
        """Start the upstream call and return the client-facing stream.

        Raises:
            InvalidRequest: the prompt is missing or empty.
            ConfigurationError: no upstream credential is configured.
            UpstreamError: upstream answered with a non-success status.
            TransportError: upstream could not be reached.
        """

        if not payload.prompt:
            raise InvalidRequest("prompt is required")
        api_key = self._settings.anthropic_api_key
        if not api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY is not configured")

        client = self._client_factory()
        request = client.build_request(
            "POST",
            self._settings.anthropic_api_url,
            headers=self._upstream_headers(api_key),
            json=self._upstream_body(payload.prompt),
        )
        LOGGER.info(
            "Upstream generation request",
            extra={
                "model": self._settings.model,
                "storyId": payload.storyId,
                "promptChars": len(payload.prompt),
            },
        )
        try:
            upstream = await client.send(request, stream=True)
        except httpx.HTTPError as exc:
            await client.aclose()
            LOGGER.error("Upstream transport failure", extra={"error": str(exc)})
            raise TransportError(str(exc) or exc.__class__.__name__) from exc

        if not upstream.is_success:
            try:
                body = await upstream.aread()
            except httpx.HTTPError as exc:
                LOGGER.error("Upstream error body unreadable", extra={"status": upstream.status_code, "error": str(exc)})
                raise TransportError(str(exc) or exc.__class__.__name__) from exc
            finally:
                await upstream.aclose()
                await client.aclose()
            message = extract_error_message(body)
            LOGGER.warning(
                "Upstream returned error status",
                extra={"status": upstream.status_code, "error": message},
            )
            raise UpstreamError(upstream.status_code, message)

        tracker = self._ledger.start_call(
            self._settings.model,
            UsageContext(
                storyId=payload.storyId,
                storyName=payload.storyName,
                speakerName=payload.speakerName,
            ),
        )
        return StreamingResponse(
            self._forward(client, upstream, tracker),
            media_type="text/event-stream",
            headers=STREAM_HEADERS,
        )

    async def _forward(
        self,
        client: httpx.AsyncClient,
        upstream: httpx.Response,
        tracker: UsageTracker,
    ) -> AsyncIterator[bytes]:
        try:
            async for chunk in upstream.aiter_bytes():
                tracker.feed(chunk)
                yield chunk
            yield DONE_FRAME
        except httpx.HTTPError as exc:
            LOGGER.warning("Upstream stream interrupted", extra={"error": str(exc)})
            yield error_frame(str(exc) or exc.__class__.__name__)
        finally:
            try:
                tracker.finish()
            finally:
                await upstream.aclose()
                await client.aclose()

    def _upstream_headers(self, api_key: str) -> Dict[str, str]:
        return {
            "content-type": "application/json",
            "x-api-key": api_key,
            "anthropic-version": self._settings.anthropic_version,
        }

    def _upstream_body(self, prompt: str) -> Dict[str, object]:
        return {
            "model": self._settings.model,
            "max_tokens": self._settings.max_tokens,
            "stream": True,
            "messages": [{"role": "user", "content": prompt}],
        }


def extract_error_message(body: bytes) -> str:
    """Pull a readable message out of an upstream error body."""

    text = body.decode("utf-8", errors="replace")
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return text
    if isinstance(parsed, dict):
        error = parsed.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if parsed.get("message"):
            return str(parsed["message"])
    return text


def error_frame(message: str) -> bytes:
    return f"data: {json.dumps({'error': message}, ensure_ascii=False)}\n\n".encode("utf-8")
