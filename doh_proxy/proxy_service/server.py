"""DoH proxy service entry point."""

from contextlib import asynccontextmanager

import uvicorn
from starlette.applications import Starlette
from starlette.routing import Route

from doh_proxy.proxy_service.handlers import DohProxyHandler
from doh_proxy.proxy_service.upstream.base_transport import UpstreamTransport
from doh_proxy.proxy_service.upstream.http.client import cleanup_session, setup_session
from doh_proxy.proxy_service.upstream.http.transport import AiohttpUpstreamTransport
from doh_proxy.shared.config import Settings, get_settings
from doh_proxy.shared.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: Starlette):
    """Manage application lifecycle (startup/shutdown)."""
    settings: Settings = app.state.settings
    logger.info("Starting DoH proxy")
    logger.info(f"Upstream: {settings.upstream_base_url} (path policy: {settings.path_policy})")

    if getattr(app.state, "upstream_transport", None) is not None:
        # Injected transport, lifecycle owned by the caller.
        yield
        logger.info("DoH proxy stopped")
        return

    session = await setup_session()
    app.state.upstream_transport = AiohttpUpstreamTransport(session)

    try:
        yield
    finally:
        app.state.upstream_transport = None
        await cleanup_session(session)
        logger.info("DoH proxy stopped")


def create_app(settings: Settings | None = None, transport: UpstreamTransport | None = None) -> Starlette:
    """
    Create and configure the proxy application.

    Args:
        settings: Proxy configuration, read from the environment when omitted
        transport: Upstream transport to use instead of an aiohttp session

    Returns:
        Starlette application with a single catch-all proxy route
    """
    settings = settings or get_settings()
    handler = DohProxyHandler(settings)

    app = Starlette(
        debug=False,
        routes=[
            # Mounted as a raw ASGI app so every method reaches the handler's own 405.
            Route(f"{settings.route_prefix}/{{path:path}}", handler),
        ],
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.upstream_transport = transport

    return app


def main() -> None:
    """Entry point for the proxy."""
    settings = get_settings()
    setup_logging(settings.log_level)

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        loop="uvloop",
        log_config=None,
    )


if __name__ == "__main__":
    main()
