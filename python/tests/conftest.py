"""Pytest configuration and fixtures for chat relay tests.

Test isolation strategy:
- No test reaches a real provider; outbound HTTP is mocked with respx
- Settings are built explicitly (never from .env) and the settings cache is
  cleared around every test
- Provider credentials from the developer's environment are removed
"""

import importlib
import sys
from collections.abc import Generator
from pathlib import Path

# Add repo root to sys.path for importing top-level packages (e.g., apps)
_repo_root = Path(__file__).parent.parent.parent
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))

import httpx
import pytest
import structlog
from fastapi import FastAPI
from fastapi.testclient import TestClient

from chatrelay.api.deps import get_settings_dep
from chatrelay.app import add_request_id_middleware, create_app
from chatrelay.config import PROVIDER_IDS, Settings, clear_settings_cache
from chatrelay.logging import add_request_context
from chatrelay.services.llm import ProviderRegistry, default_registry
from tests.helpers import make_settings

PROVIDER_ENV_SUFFIXES = ("API_KEY", "MODEL", "DEFINITION", "ASSISTANT_ID", "USE_ASSISTANT")

# Modules whose structlog loggers log_sink redirects
LOGGED_MODULES = (
    "chatrelay.services.chat",
    "chatrelay.services.llm.relay",
    "chatrelay.services.llm.assistant_run",
    "chatrelay.services.llm.bridge",
    "chatrelay.client.consumer",
    "chatrelay.client.history",
)


@pytest.fixture(autouse=True)
def _test_environment(monkeypatch) -> Generator[None, None, None]:
    """Run every test in the test environment without real credentials."""
    monkeypatch.setenv("CHATRELAY_ENV", "test")
    monkeypatch.setenv("LOG_JSON", "false")
    monkeypatch.delenv("CHATRELAY_PROVIDER", raising=False)
    for provider in PROVIDER_IDS:
        for suffix in PROVIDER_ENV_SUFFIXES:
            monkeypatch.delenv(f"{provider.upper()}_{suffix}", raising=False)

    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings() -> Settings:
    """Settings with a test key for every provider, OpenAI direct mode."""
    return make_settings()


@pytest.fixture
def registry() -> ProviderRegistry:
    return default_registry()


@pytest.fixture
def httpx_client() -> httpx.AsyncClient:
    """Create an httpx AsyncClient for testing."""
    return httpx.AsyncClient()


@pytest.fixture
def app(settings: Settings) -> FastAPI:
    """Application wired like apps/api/main.py, with test settings."""
    app = create_app()
    add_request_id_middleware(app)
    app.dependency_overrides[get_settings_dep] = lambda: settings
    return app


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """Provide a FastAPI test client with the app lifespan running."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def log_sink(monkeypatch):
    """Configure structlog to capture events into a list.

    Returns a list that will contain all emitted log event dicts.
    Module loggers in LOGGED_MODULES are replaced with fresh ones so the
    capture applies even after another test cached them.
    """
    events: list[dict] = []
    original_config = structlog.get_config()

    def capture_processor(logger, method_name, event_dict):
        event_dict = event_dict.copy()
        event_dict.setdefault("log_level", method_name)
        events.append(event_dict)
        raise structlog.DropEvent

    structlog.configure(
        processors=[add_request_context, capture_processor],
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    for name in LOGGED_MODULES:
        monkeypatch.setattr(importlib.import_module(name), "logger", structlog.get_logger(name))

    yield events

    structlog.configure(**original_config)
