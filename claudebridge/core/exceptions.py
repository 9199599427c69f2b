"""Core exceptions for the bridge."""

from typing import Mapping, Optional


class ProxyError(Exception):
    """Base exception for bridge errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class MalformedRequestError(ProxyError):
    """Raised when an inbound chat request is missing or has invalid fields."""

    def __init__(
        self,
        message: str,
        code: str = "invalid_request",
        param: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.param = param


class UpstreamError(ProxyError):
    """Raised when the backend answers with a non-2xx status.

    The body is kept verbatim so it can be handed back to the client.
    """

    def __init__(
        self,
        status_code: int,
        body: bytes = b"",
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        super().__init__(f"upstream returned status {status_code}")
        self.status_code = status_code
        self.body = body
        self.headers = dict(headers or {})

    def body_text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class TransportError(ProxyError):
    """Raised when the backend could not be reached at the connection level."""
    pass


class StreamDecodeError(ProxyError):
    """Raised for a single SSE line that cannot be decoded."""

    def __init__(self, message: str, line: str = "") -> None:
        super().__init__(message)
        self.line = line


class ConfigurationError(ProxyError):
    """Raised when there's an issue with the configuration."""
    pass
