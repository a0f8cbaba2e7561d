"""
Pytest configuration and shared fixtures.

Provides envelope/outcome factories, an httpx.MockTransport hook for the
provider adapters, and environment setup for the Arena test suite.

IMPORTANT: Environment variables must be set BEFORE importing arena modules
that use pydantic-settings, since settings are cached on first use.
"""

import os

# Set test environment variables before importing arena modules
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["DEBUG"] = "false"
os.environ["TRUST_JITTER"] = "false"
os.environ["TRACK_METRICS"] = "true"
for _key in ("OPENROUTER_API_KEY", "FAL_KEY", "HUGGINGFACE_API_KEY", "TRUST_SEED"):
    os.environ.pop(_key, None)

# Now safe to import everything else
import httpx
import pytest
from fastapi.testclient import TestClient

from arena.dispatcher.types import (
    AdapterOutcome,
    CredentialSet,
    ResponseEnvelope,
    TokenUsage,
)
from arena.registry.models import ProviderFamily


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "asyncio: mark test as async")
    config.addinivalue_line("markers", "slow: mark test as slow-running")


@pytest.fixture(autouse=True)
def reset_singletons():
    """
    Reset all singleton instances between tests.

    This ensures each test starts with a clean state.
    """
    yield

    from arena.config import get_settings
    from arena.dispatcher import handlers
    from arena.history import store as history_store
    from arena.metrics import store as metrics_store
    from arena.registry import models
    from arena.scoring import trust

    get_settings.cache_clear()
    handlers._clients = None
    models._registry_instance = None
    trust._annotator = None

    if metrics_store._store is not None:
        metrics_store._store.reset()
    if history_store._store is not None:
        history_store._store.clear()


@pytest.fixture
def make_envelope():
    """
    Factory fixture for ResponseEnvelope objects.

    Usage:
        envelope = make_envelope("fal-ai/flux-dev", ProviderFamily.FAL, "https://img/1.png")
    """

    def _create(
        target: str = "openai/gpt-4o-mini",
        family: ProviderFamily = ProviderFamily.CHAT,
        content: str = "Hello there",
        input_tokens: int = 10,
        output_tokens: int = 5,
    ) -> ResponseEnvelope:
        return ResponseEnvelope.build(
            model=target,
            object="chat.completion" if family == ProviderFamily.CHAT else "image.generation",
            content=content,
            usage=TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens),
            response_time_ms=12.5,
            family=family,
        )

    return _create


@pytest.fixture
def ok_outcome(make_envelope):
    """Factory for successful AdapterOutcome objects."""

    def _create(target: str, family: ProviderFamily, content: str = "ok") -> AdapterOutcome:
        return AdapterOutcome(
            target=target,
            family=family,
            envelope=make_envelope(target, family, content),
        )

    return _create


@pytest.fixture
def error_outcome():
    """Factory for failed AdapterOutcome objects."""

    def _create(target: str, family: ProviderFamily, error) -> AdapterOutcome:
        error.target = error.target or target
        return AdapterOutcome(target=target, family=family, error=error)

    return _create


@pytest.fixture
def all_credentials():
    return CredentialSet(chat="or-key", fal="fal-key", huggingface="hf-key")


@pytest.fixture
def mock_transport():
    """
    Route all provider HTTP traffic through an httpx.MockTransport.

    Usage:
        requests = mock_transport(lambda request: httpx.Response(200, json={...}))

    Returns the list that captures every request sent, in order.
    """
    from arena.dispatcher import handlers
    from arena.dispatcher.handlers import ProviderClients

    def _install(handler) -> list[httpx.Request]:
        captured: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(_record))
        handlers._clients = ProviderClients(http_client=client)
        return captured

    return _install


@pytest.fixture
def test_client():
    """Create a FastAPI TestClient running the application lifespan."""
    from arena.main import app

    with TestClient(app) as client:
        yield client
