"""Data models for the DoH proxy."""

from collections.abc import Awaitable, Callable
from typing import Annotated, Any
from urllib.parse import quote, urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict, Field

from doh_proxy.shared.config import PathPolicy, Settings

DEFAULT_DOH_PATH = "/dns-query"

# RFC 3986 pchar delimiters plus "/", left unescaped in forwarded paths
PATH_SAFE_CHARS = "/:@!$&'()*+,;="


class UpstreamTarget(BaseModel):
    """Upstream resolver address plus the policy used to build request URLs."""

    model_config = ConfigDict(frozen=True)

    base_url: Annotated[str, Field(description="Scheme, host and optional path of the resolver")]
    path_policy: Annotated[PathPolicy, Field(description="passthrough or fixed")] = "passthrough"
    fixed_path: Annotated[str | None, Field(description="Endpoint path for the fixed policy")] = None
    forward_query: Annotated[bool, Field(description="Keep the inbound query under the fixed policy")] = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "UpstreamTarget":
        return cls(
            base_url=settings.upstream_base_url,
            path_policy=settings.path_policy,
            fixed_path=settings.fixed_path,
            forward_query=settings.forward_query,
        )

    @property
    def host(self) -> str:
        """Host (and explicit port) of the resolver, as sent in the Host header."""
        return urlsplit(self.base_url).netloc.rpartition("@")[2]

    @property
    def endpoint_path(self) -> str:
        """Path used by the fixed policy."""
        return self.fixed_path or urlsplit(self.base_url).path or DEFAULT_DOH_PATH

    def build_url(self, captured_path: str, query: str) -> str:
        """
        Build the upstream URL for a request.

        Args:
            captured_path: Route-captured suffix of the inbound path, percent-decoded, may be empty
            query: Raw inbound query string, forwarded verbatim

        Returns:
            Absolute upstream URL
        """
        parts = urlsplit(self.base_url)

        if self.path_policy == "fixed":
            path = self.endpoint_path
            if not self.forward_query:
                query = ""
        else:
            path = "/" + quote(captured_path, safe=PATH_SAFE_CHARS)

        return urlunsplit((parts.scheme, parts.netloc, path, query, ""))


class UpstreamRequest(BaseModel):
    """Request issued to the upstream resolver."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    method: Annotated[str, Field(description="HTTP method")]
    url: Annotated[str, Field(description="Absolute upstream URL")]
    headers: Annotated[dict[str, str], Field(description="Synthesized request headers")] = {}
    # bytes, an async iterator of bytes, or None for a bodyless request
    body: Annotated[Any, Field(description="DNS message body")] = None


class UpstreamResponse(BaseModel):
    """Upstream response whose body has not been read yet."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    status_code: Annotated[int, Field(ge=100, le=599, description="HTTP status code")]
    headers: Annotated[list[tuple[str, str]], Field(description="Response headers in wire order")] = []
    # async iterator of bytes, consumed once
    body: Annotated[Any, Field(description="Lazy response body")] = None
    close: Annotated[Callable[[], Awaitable[None]] | None, Field(description="Aborts the upstream exchange")] = None
