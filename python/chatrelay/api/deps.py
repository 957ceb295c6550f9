"""FastAPI dependencies for route handlers."""

import httpx
from fastapi import Request

from chatrelay.config import Settings, get_settings
from chatrelay.services.llm import ProviderRegistry

__all__ = ["get_http_client", "get_registry", "get_settings_dep"]


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Shared outbound client created in the app lifespan."""
    return request.app.state.httpx_client


def get_registry(request: Request) -> ProviderRegistry:
    """Provider adapter registry created in the app lifespan."""
    return request.app.state.provider_registry


def get_settings_dep() -> Settings:
    return get_settings()
