import asyncio
from collections.abc import AsyncIterator

from starlette.datastructures import MutableHeaders
from starlette.requests import ClientDisconnect, Request
from starlette.responses import PlainTextResponse, Response, StreamingResponse
from starlette.types import Receive, Scope, Send

from doh_proxy.proxy_service.dns_message import (
    DOH_DNS_PARAM,
    DOH_JSON_MEDIA_TYPE,
    DOH_MEDIA_TYPE,
    decode_dns_param,
    is_dns_media_type,
)
from doh_proxy.proxy_service.errors import (
    MethodNotAllowed,
    MissingParameter,
    ProxyError,
    UnsupportedMediaType,
    UpstreamFailure,
    UpstreamUnavailable,
)
from doh_proxy.proxy_service.upstream.base_transport import UpstreamTransport
from doh_proxy.shared.config import Settings
from doh_proxy.shared.logging import get_logger
from doh_proxy.shared.models import UpstreamRequest, UpstreamResponse, UpstreamTarget

logger = get_logger(__name__)

ALLOWED_METHODS = ("GET", "POST")
NO_STORE = "no-store, max-age=0"

# Connection-scoped headers (RFC 7230 section 6.1), never relayed
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# nginx's code for a client that went away before the response was ready
CLIENT_CLOSED_REQUEST = 499


class DohProxyHandler:
    """
    Translates DoH requests and forwards them to a single upstream resolver.

    Each request walks the same linear pipeline: method check, DNS message
    extraction, upstream URL and header synthesis, dispatch, relay. Any
    failure ends the request with an HTTP error response; nothing is retried.
    """

    def __init__(self, settings: Settings):
        self.__settings = settings
        self.__target = UpstreamTarget.from_settings(settings)
        self.__accept = f"{DOH_MEDIA_TYPE}, {DOH_JSON_MEDIA_TYPE}" if settings.accept_json else DOH_MEDIA_TYPE

    def _get_transport(self, request: Request) -> UpstreamTransport:
        """Get the upstream transport from the application state."""
        transport = getattr(request.app.state, "upstream_transport", None)
        if transport is None:
            raise RuntimeError("Upstream transport is not initialized")
        return transport

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI entry point used by Starlette router."""
        request = Request(scope, receive, send)
        response = await self.handle(request)
        await response(scope, receive, send)

    async def handle(self, request: Request) -> Response:
        """Run the proxy pipeline for one request; never raises."""
        upstream_url = None
        inbound = None

        try:
            self._check_method(request)

            inbound = _InboundBody()
            method, query, body = await self._extract_message(request, inbound)

            upstream_url = self.__target.build_url(request.path_params.get("path", ""), query)
            upstream_req = UpstreamRequest(
                method=method,
                url=upstream_url,
                headers=self._build_forward_headers(request, has_body=body is not None),
                body=body,
            )
            logger.debug(f"Proxying {request.method} {request.url.path} -> {method} {upstream_url}")

            upstream_resp = await self._dispatch(request, upstream_req, inbound)
            if upstream_resp is None:
                logger.info(f"Client disconnected, upstream request to {upstream_url} cancelled")
                return Response(status_code=CLIENT_CLOSED_REQUEST)

            return self._build_http_response(upstream_resp)

        except UpstreamUnavailable as exc:
            if inbound is not None and inbound.client_disconnected.is_set():
                logger.info(f"Client disconnected while sending the request body for {upstream_url}")
                return Response(status_code=CLIENT_CLOSED_REQUEST)
            logger.error(f"DoH proxy error for {upstream_url}: {exc}")
            return self._error_response(UpstreamFailure(self.__settings.upstream_failure_status))

        except ClientDisconnect:
            logger.info(f"Client disconnected while sending the request body for {upstream_url}")
            return Response(status_code=CLIENT_CLOSED_REQUEST)

        except ProxyError as exc:
            logger.info(f"Rejected {request.method} {request.url.path}: {exc.status_code} {exc.detail}")
            return self._error_response(exc)

        except Exception as exc:
            logger.exception(f"DoH proxy error for {upstream_url}: {exc}")
            return self._error_response(UpstreamFailure(self.__settings.upstream_failure_status))

    def _check_method(self, request: Request) -> None:
        if request.method not in ALLOWED_METHODS:
            raise MethodNotAllowed()

    async def _extract_message(
        self, request: Request, inbound: "_InboundBody"
    ) -> tuple[str, str, bytes | AsyncIterator[bytes] | None]:
        """
        Derive the upstream method, query string and body from the inbound request.

        POST bodies stream through untouched. A GET ``dns`` parameter is
        always decoded, which validates it; it only becomes the body when
        requests are normalized to POST.
        """
        query = request.url.query

        if request.method == "POST":
            content_type = request.headers.get("content-type")
            if content_type is not None or self.__settings.strict_content_type:
                if not is_dns_media_type(content_type):
                    raise UnsupportedMediaType()
            return "POST", query, self._stream_body(request, inbound)

        inbound.consumed.set()

        dns_values = request.query_params.getlist(DOH_DNS_PARAM)
        dns_param = dns_values[0] if dns_values else ""
        if not dns_param:
            if self.__settings.missing_dns_param_policy == "error":
                raise MissingParameter()
            # Not a wire-format query, e.g. /resolve?name=...; forward as is.
            return "GET", query, None

        message = decode_dns_param(dns_param)

        if self.__settings.method_policy == "normalize-to-post":
            return "POST", _drop_query_param(query, DOH_DNS_PARAM), message
        return "GET", query, None

    @staticmethod
    async def _stream_body(request: Request, inbound: "_InboundBody") -> AsyncIterator[bytes]:
        try:
            async for chunk in request.stream():
                if chunk:
                    yield chunk
        except ClientDisconnect:
            # The HTTP client wraps this into its own error; keep the cause visible.
            inbound.client_disconnected.set()
            raise
        finally:
            inbound.consumed.set()

    def _build_forward_headers(self, request: Request, has_body: bool) -> dict[str, str]:
        """Build a fresh header set; only Accept-Language is taken from the client."""
        headers = {"Accept": self.__accept}
        if has_body:
            headers["Content-Type"] = DOH_MEDIA_TYPE
        headers["Host"] = self.__target.host

        accept_language = request.headers.get("accept-language")
        if accept_language:
            headers["Accept-Language"] = accept_language

        return headers

    async def _dispatch(
        self, request: Request, upstream_req: UpstreamRequest, inbound: "_InboundBody"
    ) -> UpstreamResponse | None:
        """
        Send the request upstream, racing it against a client disconnect.

        Returns None when the client went away first; the upstream call is
        cancelled in that case.
        """
        transport = self._get_transport(request)

        upstream_task = asyncio.ensure_future(transport.send_request(upstream_req))
        disconnect_task = asyncio.ensure_future(self._wait_for_disconnect(request, inbound))

        try:
            await asyncio.wait({upstream_task, disconnect_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (upstream_task, disconnect_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(upstream_task, disconnect_task, return_exceptions=True)
            await _close_unread_body(upstream_req.body, inbound)

        if upstream_task.cancelled():
            return None
        return upstream_task.result()

    @staticmethod
    async def _wait_for_disconnect(request: Request, inbound: "_InboundBody") -> None:
        # The body stream owns receive() until it is drained.
        await inbound.consumed.wait()
        while True:
            message = await request.receive()
            if message["type"] == "http.disconnect":
                return

    def _build_http_response(self, upstream_resp: UpstreamResponse) -> Response:
        """
        Translate UpstreamResponse -> Starlette StreamingResponse.
        """
        headers = MutableHeaders()
        for name, value in upstream_resp.headers:
            if name.lower() not in HOP_BY_HOP_HEADERS:
                headers.append(name, value)

        headers["Cache-Control"] = NO_STORE
        if "content-type" not in headers:
            headers["Content-Type"] = DOH_MEDIA_TYPE

        return StreamingResponse(
            self._relay_body(upstream_resp),
            status_code=upstream_resp.status_code,
            headers=headers,
        )

    @staticmethod
    async def _relay_body(upstream_resp: UpstreamResponse) -> AsyncIterator[bytes]:
        try:
            if upstream_resp.body is not None:
                async for chunk in upstream_resp.body:
                    yield chunk
        except Exception as exc:
            logger.error(f"Upstream body stream failed: {exc}")
            raise
        finally:
            if upstream_resp.close is not None:
                await upstream_resp.close()

    @staticmethod
    def _error_response(exc: ProxyError) -> Response:
        return PlainTextResponse(exc.detail, status_code=exc.status_code, headers=exc.headers)


class _InboundBody:
    """Per-request state of the inbound body stream."""

    def __init__(self) -> None:
        self.consumed = asyncio.Event()
        self.client_disconnected = asyncio.Event()


async def _close_unread_body(body, inbound: _InboundBody) -> None:
    """Close a request body stream the upstream call never finished reading."""
    if inbound.consumed.is_set() or not hasattr(body, "aclose"):
        return
    try:
        await body.aclose()
    except RuntimeError:
        # Still being iterated by the HTTP client's writer, which closes it.
        logger.debug("Request body stream still in use, left to the HTTP client")


def _drop_query_param(query: str, name: str) -> str:
    """Remove every ``name=...`` pair from a raw query string, keeping the rest verbatim."""
    pairs = [pair for pair in query.split("&") if pair and pair.split("=", 1)[0] != name]
    return "&".join(pairs)
