"""Abstract base class for upstream transports."""

from abc import ABC, abstractmethod

from doh_proxy.shared.models import UpstreamRequest, UpstreamResponse


class UpstreamTransport(ABC):
    """Abstract interface for talking to the upstream DoH resolver."""

    @abstractmethod
    async def send_request(self, request: UpstreamRequest) -> UpstreamResponse:
        """
        Send a request upstream and return once response headers arrive.

        The returned body is lazy; callers must either drain it or await
        ``close`` to release the underlying connection. Cancelling this
        coroutine aborts the in-flight request.

        Args:
            request: Request to forward

        Returns:
            Response from the resolver, body not yet read

        Raises:
            UpstreamUnavailable: For network or transport errors
        """
        pass
