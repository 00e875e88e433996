import codecs
import json
from typing import Any, Dict, Iterator, Optional

from app.config.logger import get_logger

LOGGER = get_logger("usage_parser")

DATA_PREFIX = "data:"
MESSAGE_START = "message_start"
MESSAGE_DELTA = "message_delta"


def parse_data_payload(payload: str) -> Optional[Dict[str, Any]]:
    """Parse an event-stream data payload; ``None`` when it is not a JSON object.

    Keepalives, ``[DONE]`` and torn frames all land here and are skipped by
    the caller.
    """

    try:
        parsed = json.loads(payload)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


class UsageFrameParser:
    """Extracts token counters from a chunked event stream.

    Chunks are fed exactly as received from the network. Frames may be split
    at any byte, including inside a multi-byte UTF-8 sequence, so the decoder
    and a partial-line buffer carry state across ``feed`` calls.
    """

    def __init__(self) -> None:
        self.input_tokens = 0
        self.output_tokens = 0
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> None:
        self._buffer += self._decoder.decode(chunk)
        for line in self._drain_complete_lines():
            self._handle_line(line)

    def close(self) -> None:
        """Flush the decoder and evaluate a trailing unterminated line."""

        self._buffer += self._decoder.decode(b"", final=True)
        remainder, self._buffer = self._buffer, ""
        if remainder:
            self._handle_line(remainder.rstrip("\r"))

    @property
    def has_usage(self) -> bool:
        return self.input_tokens > 0 or self.output_tokens > 0

    def _drain_complete_lines(self) -> Iterator[str]:
        while True:
            newline = self._buffer.find("\n")
            if newline < 0:
                return
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1 :]
            yield line.rstrip("\r")

    def _handle_line(self, line: str) -> None:
        if not line.startswith(DATA_PREFIX):
            return
        message = parse_data_payload(line[len(DATA_PREFIX) :].strip())
        if message is None:
            return

        message_type = message.get("type")
        if message_type == MESSAGE_START:
            usage = _usage_of(message.get("message")) or _usage_of(message)
            tokens = _token_count(usage, "input_tokens")
            if tokens is not None:
                self.input_tokens = tokens
        elif message_type == MESSAGE_DELTA:
            # output_tokens is a running total at every delta, so overwrite.
            tokens = _token_count(_usage_of(message), "output_tokens")
            if tokens is not None:
                self.output_tokens = tokens


def _usage_of(container: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(container, dict):
        return None
    usage = container.get("usage")
    return usage if isinstance(usage, dict) else None


def _token_count(usage: Optional[Dict[str, Any]], key: str) -> Optional[int]:
    if not usage or key not in usage:
        return None
    try:
        value = int(usage[key])
    except (TypeError, ValueError):
        LOGGER.debug("Ignoring non-numeric token count", extra={"key": key, "value": usage[key]})
        return None
    return max(value, 0)
