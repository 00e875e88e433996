import json

import httpx
import pytest

from app.config.settings import Settings
from app.core.ledger import UsageLedger
from app.core.pricing import PricingConfig
from app.core.relay import DONE_FRAME, StreamRelay
from app.schemas.dj import GenerateRequest
from tests.utils import BrokenBody, ChunkStream, FakeUpstream, broadcast_stream, split_every


def _streaming_upstream(chunks, fail_after=None):
    return FakeUpstream(
        lambda request: httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            stream=ChunkStream(chunks, fail_after=fail_after),
        )
    )


def test_stream_is_forwarded_verbatim_with_done_frame(make_client, ledger):
    body = broadcast_stream(120, (30, 85))
    upstream = _streaming_upstream(split_every(body, 17))
    client = make_client(upstream)

    response = client.post(
        "/api/dj/generate",
        json={"prompt": "Tell me a story", "storyId": "s-1", "storyName": "First snow", "speakerName": "Mina"},
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    assert response.content == body + DONE_FRAME

    records = ledger.records()
    assert len(records) == 1
    assert (records[0].inputTokens, records[0].outputTokens) == (120, 85)
    assert records[0].storyId == "s-1"
    assert records[0].speakerName == "Mina"


def test_upstream_request_shape(make_client, settings):
    upstream = _streaming_upstream([broadcast_stream()])
    make_client(upstream).post("/api/dj/generate", json={"prompt": "Tell me a story"})

    assert len(upstream.requests) == 1
    sent = upstream.requests[0]
    assert str(sent.url) == settings.anthropic_api_url
    assert sent.headers["x-api-key"] == "test-key"
    assert sent.headers["anthropic-version"] == settings.anthropic_version
    assert json.loads(sent.content) == {
        "model": "claude-opus-4-5",
        "max_tokens": 4000,
        "stream": True,
        "messages": [{"role": "user", "content": "Tell me a story"}],
    }


@pytest.mark.parametrize("payload", [{}, {"prompt": ""}, {"prompt": None, "storyId": "s-1"}])
def test_missing_prompt_is_rejected(make_client, payload):
    upstream = _streaming_upstream([broadcast_stream()])
    response = make_client(upstream).post("/api/dj/generate", json=payload)
    assert response.status_code == 400
    assert "error" in response.json()
    assert upstream.requests == []


def test_missing_credential_fails_before_upstream_call(make_client, ledger):
    upstream = _streaming_upstream([broadcast_stream()])
    client = make_client(upstream, app_settings=Settings(anthropic_api_key=None, usage_sink_enabled=False))

    response = client.post("/api/dj/generate", json={"prompt": "Tell me a story"})

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/json")
    assert response.json()["error"]
    assert upstream.requests == []
    assert ledger.records() == []


def test_upstream_error_status_is_passed_through(make_client, ledger):
    upstream = FakeUpstream(lambda request: httpx.Response(429, json={"error": {"message": "rate limited"}}))
    response = make_client(upstream).post("/api/dj/generate", json={"prompt": "Tell me a story"})

    assert response.status_code == 429
    assert response.json() == {"error": "rate limited"}
    assert ledger.records() == []


def test_upstream_error_with_plain_body(make_client):
    upstream = FakeUpstream(lambda request: httpx.Response(502, text="Bad Gateway"))
    response = make_client(upstream).post("/api/dj/generate", json={"prompt": "Tell me a story"})

    assert response.status_code == 502
    assert response.json() == {"error": "Bad Gateway"}


def test_transport_failure_before_streaming(make_client, ledger):
    def _refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    response = make_client(FakeUpstream(_refuse)).post("/api/dj/generate", json={"prompt": "Tell me a story"})

    assert response.status_code == 500
    assert response.json() == {"error": "connection refused"}
    assert ledger.records() == []


def test_failure_mid_stream_emits_error_frame_and_keeps_usage(make_client, ledger):
    chunks = split_every(broadcast_stream(120, (30, 85)), 40)
    upstream = _streaming_upstream(chunks, fail_after=len(chunks) - 1)

    response = make_client(upstream).post("/api/dj/generate", json={"prompt": "Tell me a story"})

    assert response.status_code == 200
    assert response.content.startswith(b"".join(chunks[:-1]))
    assert response.content.endswith(b'data: {"error": "upstream connection reset"}\n\n')
    assert DONE_FRAME not in response.content
    assert ledger.records()[0].inputTokens == 120


def test_stream_without_usage_records_nothing(make_client, ledger):
    upstream = _streaming_upstream([b"event: ping\ndata: {\"type\": \"ping\"}\n\n"])
    response = make_client(upstream).post("/api/dj/generate", json={"prompt": "Tell me a story"})

    assert response.status_code == 200
    assert ledger.records() == []


def test_unreadable_error_body_is_reported_as_json(make_client, ledger):
    upstream = FakeUpstream(lambda request: httpx.Response(429, stream=BrokenBody()))
    response = make_client(upstream).post("/api/dj/generate", json={"prompt": "Tell me a story"})

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/json")
    assert response.json() == {"error": "connection dropped while reading body"}
    assert ledger.records() == []


@pytest.mark.asyncio
async def test_upstream_is_closed_even_if_usage_bookkeeping_fails(settings, monkeypatch):
    closed = []

    class TrackingClient(httpx.AsyncClient):
        async def aclose(self):
            closed.append(True)
            await super().aclose()

    upstream = FakeUpstream(lambda request: httpx.Response(200, stream=ChunkStream([broadcast_stream()])))
    ledger = UsageLedger(capacity=3)

    def _explode(**kwargs):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(ledger, "record", _explode)
    relay = StreamRelay(
        settings,
        ledger,
        client_factory=lambda: TrackingClient(transport=httpx.MockTransport(upstream.handler)),
    )

    response = await relay.open(GenerateRequest(prompt="Tell me a story"))
    with pytest.raises(RuntimeError):
        async for _ in response.body_iterator:
            pass
    ledger.close()
    assert closed == [True]


@pytest.mark.asyncio
async def test_custom_pricing_table_with_explicit_default(settings):
    table = {"house": PricingConfig(model="house", input_per_1m=2.0, output_per_1m=4.0)}
    with pytest.raises(ValueError):
        UsageLedger(capacity=3, pricing=table)

    ledger = UsageLedger(capacity=3, pricing=table, default_pricing_model="house")
    upstream = FakeUpstream(lambda request: httpx.Response(200, stream=ChunkStream([broadcast_stream(120, (30, 85))])))
    relay = StreamRelay(settings, ledger, client_factory=upstream.client_factory)

    response = await relay.open(GenerateRequest(prompt="Tell me a story"))
    async for _ in response.body_iterator:
        pass
    ledger.close()
    record = ledger.records()[0]
    assert (record.inputTokens, record.outputTokens) == (120, 85)
    assert record.model == "claude-opus-4-5"
    assert record.inputCost == pytest.approx(120 / 1e6 * 2.0)
    assert record.outputCost == pytest.approx(85 / 1e6 * 4.0)
