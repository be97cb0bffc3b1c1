"""aiohttp transport implementation for the upstream resolver."""

import asyncio
from collections.abc import AsyncIterator

import aiohttp
from yarl import URL

from doh_proxy.proxy_service.errors import UpstreamUnavailable
from doh_proxy.proxy_service.upstream.base_transport import UpstreamTransport
from doh_proxy.shared.logging import get_logger
from doh_proxy.shared.models import UpstreamRequest, UpstreamResponse

logger = get_logger(__name__)


class AiohttpUpstreamTransport(UpstreamTransport):
    """aiohttp-based implementation of the upstream transport."""

    def __init__(self, session: aiohttp.ClientSession):
        """
        Initialize aiohttp transport.

        Args:
            session: Open client session; its default timeout is the only one applied
        """
        self._session = session

    async def send_request(self, request: UpstreamRequest) -> UpstreamResponse:
        """Send request via aiohttp and return as soon as headers are received.

        Args:
            request: Request to forward

        Returns:
            Response whose body streams from the open connection

        Raises:
            UpstreamUnavailable: For connection, TLS, protocol or timeout errors

        """
        logger.debug(f"Sending {request.method} upstream", extra={"url": request.url})

        try:
            response = await self._session.request(
                request.method,
                # Already encoded: the query string must reach upstream verbatim.
                URL(request.url, encoded=True),
                headers=request.headers,
                data=request.body,
                allow_redirects=False,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            raise UpstreamUnavailable(f"{type(exc).__name__}: {exc}") from exc

        logger.debug(f"Upstream answered {response.status}", extra={"url": request.url})

        async def close() -> None:
            response.close()

        return UpstreamResponse(
            status_code=response.status,
            headers=[(name, value) for name, value in response.headers.items()],
            body=self._iter_body(response),
            close=close,
        )

    @staticmethod
    async def _iter_body(response: aiohttp.ClientResponse) -> AsyncIterator[bytes]:
        """Yield body chunks as they arrive; abort the connection if not drained."""
        drained = False
        try:
            async for chunk in response.content.iter_any():
                yield chunk
            drained = True
        finally:
            if drained:
                response.release()
            else:
                response.close()
