"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from app.config.settings import Settings
from app.core.ledger import UsageLedger
from app.core.relay import StreamRelay
from app.main import create_app
from tests.utils import FakeStoryRepository, FakeUpstream, FakeUsageSink


@pytest.fixture()
def settings() -> Settings:
    return Settings(anthropic_api_key="test-key", ledger_capacity=5, usage_sink_enabled=False)


@pytest.fixture()
def usage_sink() -> FakeUsageSink:
    return FakeUsageSink()


@pytest.fixture()
def ledger(settings, usage_sink):
    ledger = UsageLedger(
        capacity=settings.ledger_capacity,
        sink=usage_sink,
        executor=ThreadPoolExecutor(max_workers=1),
    )
    yield ledger
    ledger.close(wait=True)


@pytest.fixture()
def story_repository() -> FakeStoryRepository:
    return FakeStoryRepository()


@pytest.fixture()
def make_client(settings, ledger, story_repository):
    """Build a TestClient whose relay talks to ``upstream``."""

    def _make(upstream: Optional[FakeUpstream] = None, app_settings: Optional[Settings] = None) -> TestClient:
        app_settings = app_settings or settings
        upstream = upstream or FakeUpstream(lambda request: httpx.Response(500))
        relay = StreamRelay(app_settings, ledger, client_factory=upstream.client_factory)
        app = create_app(
            settings=app_settings,
            ledger=ledger,
            relay=relay,
            story_repository=story_repository,
        )
        return TestClient(app)

    return _make
