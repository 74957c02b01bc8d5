from contextlib import asynccontextmanager
import logging

from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from cache_agent.api.metrics import router as metrics_router
from cache_agent.api.proxy import router as proxy_router
from cache_agent.api.v1.routes import router as api_router
from cache_agent.core.config import get_settings
from cache_agent.core.telemetry import (
    configure_opentelemetry,
    instrument_fastapi,
    instrument_httpx,
)
from cache_agent.services.agent import AgentHost

logger = logging.getLogger(__name__)
REQUEST_ID_HEADER = "X-Request-Id"
AGENT_PREFIX = "/_agent"


def _install_request_id_middleware(app: FastAPI) -> None:
    """Ensure each response includes a stable X-Request-Id header."""

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER, str(uuid4()))
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the agent host and install the configured cache version."""
    settings = get_settings()

    # Configure OpenTelemetry at startup
    configure_opentelemetry(
        service_name=settings.otel_service_name,
        service_version=settings.otel_service_version,
        otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        otlp_headers=settings.otel_exporter_otlp_headers,
        enabled=settings.otel_enabled,
    )

    # Instrument httpx for origin fetch tracing
    instrument_httpx(enabled=settings.otel_enabled)

    agent = getattr(app.state, "agent", None) or AgentHost(settings)
    app.state.agent = agent
    await agent.start()
    try:
        yield
    finally:
        await agent.close()
        app.state.agent = None


def create_app(agent: AgentHost | None = None) -> FastAPI:
    """Application factory for FastAPI.

    A pre-built agent host may be supplied (tests inject one backed by a
    mock origin); otherwise the lifespan builds one from settings.
    """
    settings = get_settings()
    app = FastAPI(
        title="Cache Agent",
        description="Offline-first caching agent between foreground clients and their origin.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.agent = agent

    # Instrument FastAPI for tracing if enabled
    instrument_fastapi(app, enabled=settings.otel_enabled)
    _install_request_id_middleware(app)

    allow_origins = settings.cors_allow_origins
    allow_origin_regex = settings.cors_allow_origin_regex
    if allow_origins or allow_origin_regex:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allow_origins,
            allow_origin_regex=allow_origin_regex,
            allow_credentials=bool(allow_origins),
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(metrics_router, prefix=AGENT_PREFIX)
    app.include_router(api_router, prefix=f"{AGENT_PREFIX}/v1")
    # Catch-all must stay last.
    app.include_router(proxy_router)

    return app


app = create_app()
