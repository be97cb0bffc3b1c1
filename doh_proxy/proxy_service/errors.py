"""Errors raised while proxying, each tied to the HTTP response it produces."""


class ProxyError(Exception):
    """Base class for failures that end a request with an HTTP error."""

    status_code: int = 500
    detail: str = "Internal Server Error"

    def __init__(self, detail: str | None = None, headers: dict[str, str] | None = None) -> None:
        self.detail = detail or self.detail
        self.headers = headers or {}
        super().__init__(self.detail)


class MethodNotAllowed(ProxyError):
    status_code = 405
    detail = "Method Not Allowed"

    def __init__(self) -> None:
        super().__init__(headers={"Allow": "GET, POST"})


class UnsupportedMediaType(ProxyError):
    status_code = 415
    detail = "Unsupported Media Type"


class InvalidParameter(ProxyError):
    status_code = 400
    detail = "Invalid DNS Parameter"


class MissingParameter(ProxyError):
    status_code = 400
    detail = "Missing DNS Parameter"


class UpstreamFailure(ProxyError):
    """The upstream resolver could not be reached."""

    status_code = 502
    detail = "Bad Gateway"

    def __init__(self, status_code: int = 502) -> None:
        self.status_code = status_code
        super().__init__("Bad Gateway" if status_code == 502 else "Internal Server Error")


class UpstreamUnavailable(Exception):
    """Raised by transports for network or protocol errors talking to upstream."""
