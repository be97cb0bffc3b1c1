"""aiohttp client session for the upstream resolver."""

import aiohttp

from doh_proxy.shared.logging import get_logger

logger = get_logger(__name__)


async def setup_session() -> aiohttp.ClientSession:
    """Create the pooled client session used for every upstream request."""
    session = aiohttp.ClientSession(
        # Forwarded headers are synthesized by the handler, nothing else is added.
        skip_auto_headers=("User-Agent", "Accept-Encoding"),
        # Bodies are relayed as received, Content-Encoding included.
        auto_decompress=False,
        cookie_jar=aiohttp.DummyCookieJar(),
    )
    logger.info("Upstream HTTP session opened")

    return session


async def cleanup_session(session: aiohttp.ClientSession | None):
    """Close the upstream session and its pooled connections."""
    if session:
        await session.close()
        logger.info("Upstream HTTP session closed")
