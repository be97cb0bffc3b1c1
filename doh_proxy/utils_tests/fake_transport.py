import asyncio
from collections.abc import AsyncIterator

from doh_proxy.proxy_service.errors import UpstreamUnavailable
from doh_proxy.proxy_service.upstream.base_transport import UpstreamTransport
from doh_proxy.shared.models import UpstreamRequest, UpstreamResponse


class RecordingTransport(UpstreamTransport):
    """Transport double that records forwarded requests and replays a canned answer."""

    def __init__(
        self,
        status_code: int = 200,
        headers: list[tuple[str, str]] | None = None,
        chunks: list[bytes] | None = None,
        error: Exception | None = None,
    ):
        self.status_code = status_code
        self.headers = headers if headers is not None else [("Content-Type", "application/dns-message")]
        self.chunks = chunks if chunks is not None else [b"\x00\x01answer"]
        self.error = error
        self.requests: list[UpstreamRequest] = []
        self.bodies: list[bytes | None] = []
        self.closed = 0

    async def send_request(self, request: UpstreamRequest) -> UpstreamResponse:
        self.requests.append(request)
        self.bodies.append(await _drain(request.body))

        if self.error is not None:
            raise self.error

        return UpstreamResponse(
            status_code=self.status_code,
            headers=list(self.headers),
            body=self._iter_chunks(),
            close=self._close,
        )

    async def _iter_chunks(self) -> AsyncIterator[bytes]:
        for chunk in self.chunks:
            yield chunk

    async def _close(self) -> None:
        self.closed += 1


class FailingTransport(RecordingTransport):
    """Transport double whose upstream is unreachable."""

    def __init__(self):
        super().__init__(error=UpstreamUnavailable("ClientConnectorError: connection refused"))


class HangingTransport(UpstreamTransport):
    """Transport double whose upstream never answers."""

    def __init__(self):
        self.started = asyncio.Event()
        self.cancelled = False

    async def send_request(self, request: UpstreamRequest) -> UpstreamResponse:
        self.started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        raise AssertionError("unreachable")


class WrappingTransport(RecordingTransport):
    """Transport double that reports request body failures as an unreachable upstream, as aiohttp does."""

    async def send_request(self, request: UpstreamRequest) -> UpstreamResponse:
        try:
            return await super().send_request(request)
        except Exception as exc:
            raise UpstreamUnavailable(f"ClientConnectionError: {exc!r}") from exc


class BodylessFailingTransport(UpstreamTransport):
    """Transport double that fails before reading the request body."""

    def __init__(self):
        self.requests: list[UpstreamRequest] = []

    async def send_request(self, request: UpstreamRequest) -> UpstreamResponse:
        self.requests.append(request)
        raise UpstreamUnavailable("ClientConnectorError: connection refused")


async def _drain(body) -> bytes | None:
    if body is None or isinstance(body, bytes):
        return body
    data = b""
    async for chunk in body:
        data += chunk
    return data
