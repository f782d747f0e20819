"""
Hermes HTTP Server — FastAPI application hosting the relay.

Routes (first match wins):
    GET  /health      — liveness   (when health checks are enabled)
    GET  /ready       — readiness  (when health checks are enabled)
    POST /debug       — log the payload and acknowledge
    ANY  /{path}      — dispatch pipeline

Run:
    hermes serve --config config.yml --port 3000

uvicorn owns the event loop and signal handling: on SIGINT/SIGTERM it stops
accepting connections and lets in-flight requests finish, then the lifespan
closes the outbound HTTP client.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from hermes import __version__
from hermes.engine.config import RelayConfig, ServerSettings, load_config
from hermes.engine.dispatcher import DispatchHandler, DispatchResult, handle_debug
from hermes.engine.forwarder import ForwardingClient
from hermes.engine.health import health_payload, readiness_payload
from hermes.engine.logging import configure_logging, system_event
from hermes.engine.registry import EndpointRegistry
from hermes.engine.templates import TemplateRenderer

logger = logging.getLogger("hermes.server")


def _to_response(result: DispatchResult) -> JSONResponse:
    return JSONResponse(status_code=result.status_code, content=result.body)


class RelayEndpoint:
    """
    Raw ASGI endpoint for the catch-all route.

    An ASGI app rather than a function, so Starlette matches it
    for every method, including TRACE, CONNECT and extension verbs.
    """

    def __init__(self, handler: DispatchHandler):
        self.handler = handler

    async def __call__(self, scope, receive, send) -> None:
        request = Request(scope, receive)
        path = request.path_params.get("path", "")
        result = await self.handler.dispatch(f"/{path}", await request.body(), method=request.method)
        await _to_response(result)(scope, receive, send)


def create_app(
    config: RelayConfig,
    settings: Optional[ServerSettings] = None,
    forwarder: Optional[ForwardingClient] = None,
) -> FastAPI:
    """
    Build the registry and the application.

    Template compile errors and duplicate endpoints raise here, before the
    server binds, so a broken configuration never serves traffic.
    """
    settings = settings or ServerSettings()
    renderer = TemplateRenderer()
    registry = EndpointRegistry.from_config(config, renderer)
    forwarder = forwarder or ForwardingClient(
        timeout=settings.request_timeout,
        max_connections=settings.max_concurrent_requests,
    )
    handler = DispatchHandler(registry, renderer, forwarder, config.settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            f"server starting with {len(registry)} webhook register(s)",
            extra={"event_data": system_event("server_started", details={
                "endpoints": registry.endpoints(),
                "request_timeout": settings.request_timeout,
            })},
        )
        yield
        await forwarder.aclose()
        logger.info("server stopped", extra={"event_data": system_event("server_stopped")})

    # API docs are disabled: every path belongs to the relay
    app = FastAPI(
        lifespan=lifespan,
        title="Hermes",
        description="Configuration-driven webhook relay",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.handler = handler
    app.state.registry = registry

    if settings.health_check_enabled:
        @app.get("/health")
        async def health() -> dict:
            return health_payload()

        @app.get("/ready")
        async def ready() -> dict:
            return readiness_payload(config_loaded=True)

    @app.post("/debug")
    async def debug(request: Request) -> JSONResponse:
        return _to_response(handle_debug(await request.body()))

    # Registered last: it matches every path and method
    app.router.add_route("/{path:path}", RelayEndpoint(handler), name="relay")

    return app


def serve(settings: ServerSettings) -> None:
    """Load configuration, build the app and run uvicorn until signalled."""
    import uvicorn

    configure_logging(settings.log_level, settings.log_format)

    config = load_config(settings.config_path)
    logger.info(f"Loaded configuration with {len(config.registers)} webhook registers")
    for register in config.registers:
        logger.info(
            f"Registered: {register.method} {register.endpoint} -> "
            f"{register.target.method} {register.target.url}"
        )

    app = create_app(config, settings)

    logger.info(f"Webhook relay listening on http://{settings.bind_address}:{settings.port}")
    uvicorn.run(
        app,
        host=settings.bind_address,
        port=settings.port,
        limit_concurrency=settings.max_concurrent_requests,
        log_config=None,
        timeout_graceful_shutdown=settings.request_timeout,
    )
