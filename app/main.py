import json
import uuid
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.api.routes_dj import router as dj_router
from app.api.routes_health import router as health_router
from app.api.routes_stories import router as stories_router
from app.api.routes_usage import router as usage_router
from app.config.logger import get_logger, mask_headers, setup_logging
from app.config.settings import Settings, get_settings
from app.core.errors import ServiceError
from app.core.ledger import UsageLedger
from app.core.relay import StreamRelay
from app.db.firestore import get_firestore_client
from app.db.story_repository import FirestoreStoryRepository, StoryRepository
from app.db.usage_sink import FirestoreUsageSink

setup_logging()
LOGGER = get_logger("request")

_QUIET_PATHS = ("/health",)


def _json_pretty(obj: Any) -> str:
    try:
        return json.dumps(obj, indent=2, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(obj)


def _decode_body(raw: bytes) -> Any:
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return raw.decode("utf-8", errors="ignore")


async def log_requests(request: Request, call_next):
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    if request.url.path in _QUIET_PATHS:
        response = await call_next(request)
        LOGGER.debug(
            "Health check request skipped verbose logging",
            extra={"requestId": request_id, "status": response.status_code},
        )
        return response

    raw_body = await request.body()
    LOGGER.info(
        "Incoming request: %s %s (Request ID: %s)",
        request.method,
        request.url,
        request_id,
    )
    LOGGER.info(
        "Request headers: %s (Request ID: %s)",
        mask_headers(request.headers),
        request_id,
    )
    if raw_body:
        LOGGER.info(
            "Request body (Request ID: %s):\n%s",
            request_id,
            _json_pretty(_decode_body(raw_body)),
        )

    response = await call_next(request)
    LOGGER.info(
        "Response status: %s (Request ID: %s)",
        response.status_code,
        request_id,
    )

    # Event streams are relayed as they arrive; buffering them here would
    # hold every frame until the upstream finishes.
    if response.headers.get("content-type", "").startswith("text/event-stream"):
        return response

    resp_body = b""
    async for chunk in response.body_iterator:
        resp_body += chunk
    if resp_body:
        LOGGER.info(
            "Response body (Request ID: %s):\n%s",
            request_id,
            _json_pretty(_decode_body(resp_body)),
        )

    return Response(
        content=resp_body,
        status_code=response.status_code,
        headers=dict(response.headers),
        media_type=response.media_type,
        background=response.background,
    )


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    LOGGER.warning(
        "Request failed: %s",
        exc.message,
        extra={
            "requestId": getattr(request.state, "request_id", None),
            "errorType": exc.__class__.__name__,
            "status": exc.status_code,
        },
    )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return JSONResponse(status_code=400, content={"error": "; ".join(messages) or "invalid request"})


def create_app(
    settings: Optional[Settings] = None,
    ledger: Optional[UsageLedger] = None,
    relay: Optional[StreamRelay] = None,
    story_repository: Optional[StoryRepository] = None,
) -> FastAPI:
    settings = settings or get_settings()
    if ledger is None:
        sink = None
        if settings.usage_sink_enabled:
            sink = FirestoreUsageSink(get_firestore_client, collection=settings.usage_collection)
        ledger = UsageLedger(
            capacity=settings.ledger_capacity,
            sink=sink,
            debug_logs=settings.debug_logs,
        )
    relay = relay or StreamRelay(settings, ledger)
    story_repository = story_repository or FirestoreStoryRepository(
        get_firestore_client, collection=settings.stories_collection
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        LOGGER.info(
            "Radio story service starting",
            extra={
                "model": settings.model,
                "ledgerCapacity": settings.ledger_capacity,
                "usageSink": settings.usage_sink_enabled,
                "credentialConfigured": bool(settings.anthropic_api_key),
            },
        )
        yield
        ledger.close(wait=True)
        LOGGER.info("Radio story service stopped")

    _app = FastAPI(title="Radio Story Service", version="1.0.0", lifespan=lifespan)
    _app.state.settings = settings
    _app.state.ledger = ledger
    _app.state.relay = relay
    _app.state.story_repository = story_repository

    _app.middleware("http")(log_requests)
    _app.add_exception_handler(ServiceError, service_error_handler)
    _app.add_exception_handler(RequestValidationError, validation_error_handler)

    _app.include_router(health_router)
    _app.include_router(dj_router)
    _app.include_router(usage_router)
    _app.include_router(stories_router)
    return _app


app = create_app()
