"""Fakes and stream builders shared by the test modules."""

from __future__ import annotations

import json
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx

from app.core.errors import SinkWriteError
from app.core.stories import matches_filter
from app.schemas.story import Story
from app.schemas.usage import UsageRecord


class FakeUsageSink:
    def __init__(self, stored: Optional[List[UsageRecord]] = None, fail_writes: bool = False, fail_reads: bool = False):
        self.stored: List[UsageRecord] = list(stored or [])
        self.fail_writes = fail_writes
        self.fail_reads = fail_reads
        self.read_limits: List[int] = []
        self._lock = threading.Lock()

    def append(self, record: UsageRecord) -> None:
        if self.fail_writes:
            raise SinkWriteError("sink unavailable")
        with self._lock:
            self.stored.insert(0, record)

    def recent(self, limit: int) -> List[UsageRecord]:
        self.read_limits.append(limit)
        if self.fail_reads:
            raise RuntimeError("sink unreachable")
        return self.stored[:limit]


class FakeStoryRepository:
    def __init__(self, stories: Optional[Iterable[Dict[str, Any]]] = None):
        self.stories: Dict[str, Dict[str, Any]] = {s["id"]: dict(s) for s in stories or []}

    def add(self, story: Story) -> None:
        self.stories[story.id] = story.model_dump()

    def list(self, filter_name: str, limit: int) -> List[Dict[str, Any]]:
        ordered = sorted(self.stories.values(), key=lambda s: s["createdAt"], reverse=True)
        return [s for s in ordered if matches_filter(s, filter_name)][:limit]

    def all(self) -> List[Dict[str, Any]]:
        return list(self.stories.values())

    def delete(self, story_id: str) -> None:
        self.stories.pop(story_id, None)

    def delete_all(self) -> int:
        count = len(self.stories)
        self.stories.clear()
        return count


class ChunkStream(httpx.AsyncByteStream):
    """Upstream body delivered as the given network chunks."""

    def __init__(self, chunks: Iterable[bytes], fail_after: Optional[int] = None):
        self._chunks = list(chunks)
        self._fail_after = fail_after

    async def __aiter__(self):
        for index, chunk in enumerate(self._chunks):
            if self._fail_after is not None and index == self._fail_after:
                raise httpx.ReadError("upstream connection reset")
            yield chunk


class FakeUpstream:
    """Records outbound requests and answers them with a canned response."""

    def __init__(self, responder: Callable[[httpx.Request], httpx.Response]):
        self._responder = responder
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._responder(request)

    def client_factory(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def sse(event: str, data: Dict[str, Any]) -> bytes:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n".encode("utf-8")


def broadcast_stream(input_tokens: int = 120, output_steps: Iterable[int] = (30, 85)) -> bytes:
    frames = [
        sse(
            "message_start",
            {
                "type": "message_start",
                "message": {"id": "msg_01", "model": "claude-opus-4-5", "usage": {"input_tokens": input_tokens, "output_tokens": 1}},
            },
        ),
        sse("ping", {"type": "ping"}),
        sse(
            "content_block_delta",
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "안녕하세요, 라디오 DJ입니다."}},
        ),
    ]
    for step in output_steps:
        frames.append(
            sse("message_delta", {"type": "message_delta", "delta": {"stop_reason": None}, "usage": {"output_tokens": step}})
        )
    frames.append(sse("message_stop", {"type": "message_stop"}))
    return b"".join(frames)


def split_every(data: bytes, size: int) -> List[bytes]:
    return [data[i : i + size] for i in range(0, len(data), size)]




class BrokenBody(httpx.AsyncByteStream):
    """Upstream body whose connection drops before any byte arrives."""

    async def __aiter__(self):
        raise httpx.ReadError("connection dropped while reading body")
        yield b""  # pragma: no cover
