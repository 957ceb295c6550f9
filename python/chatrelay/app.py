"""FastAPI application creation and configuration.

Registers exception handlers, the malformed-JSON guard and routes.

Middleware Ordering (Critical):
- Middleware runs in reverse order of registration
- RequestIDMiddleware is added LAST (see add_request_id_middleware) so it
  runs FIRST and every response carries X-Request-ID

HTTP Client Lifecycle:
- httpx.AsyncClient is created at startup, stored in app.state
- The provider registry is built once and shared read-only
- Client is closed gracefully at shutdown
"""

import json
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from chatrelay.api.routes import create_api_router
from chatrelay.config import get_settings
from chatrelay.errors import ApiError, ApiErrorCode
from chatrelay.logging import configure_logging, get_logger
from chatrelay.middleware.request_id import RequestIDMiddleware
from chatrelay.responses import (
    api_error_handler,
    error_response,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from chatrelay.services.llm import default_registry

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle resources.

    - Creates shared httpx.AsyncClient for connection pooling
    - Builds the provider registry
    - Cleans up on shutdown
    """
    settings = get_settings()

    app.state.httpx_client = httpx.AsyncClient(
        timeout=httpx.Timeout(
            settings.provider_timeout_s, connect=settings.provider_connect_timeout_s
        ),
        limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
    )
    app.state.provider_registry = default_registry(
        anthropic_max_tokens=settings.anthropic_max_tokens
    )

    logger.info(
        "relay.initialized",
        default_provider=settings.default_provider,
        providers=list(app.state.provider_registry.provider_ids),
    )

    yield

    await app.state.httpx_client.aclose()
    logger.info("httpx_client_closed")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()
    configure_logging(json_format=settings.log_json)

    app = FastAPI(
        title="Chat Relay API",
        description="Streaming relay between chat clients and LLM providers",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.middleware("http")
    async def catch_json_decode_errors(request: Request, call_next):
        """Reject malformed JSON bodies before they reach route handlers."""
        if request.method in ("POST", "PUT", "PATCH"):
            content_type = request.headers.get("content-type", "")
            if "application/json" in content_type:
                body = await request.body()
                if body:
                    try:
                        json.loads(body)
                    except json.JSONDecodeError:
                        return JSONResponse(
                            status_code=400,
                            content=error_response(
                                ApiErrorCode.E_INVALID_REQUEST, "Malformed JSON body"
                            ),
                        )
        return await call_next(request)

    app.include_router(create_api_router())

    return app


def add_request_id_middleware(app: FastAPI, log_requests: bool = True) -> None:
    """Add request-id middleware to the app.

    Call AFTER all other middleware is added, so it runs FIRST.

    Args:
        app: The FastAPI application.
        log_requests: Whether to log access entries for each request.
    """
    app.add_middleware(RequestIDMiddleware, log_requests=log_requests)
