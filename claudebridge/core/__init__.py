"""Core functionality for the bridge."""

from .backend import Backend, backend_from_config
from .exceptions import (
    ConfigurationError,
    MalformedRequestError,
    ProxyError,
    StreamDecodeError,
    TransportError,
    UpstreamError,
)
from .registry import get_bridge, set_bridge
from .transport import RetryingTransport

__all__ = [
    "Backend",
    "ConfigurationError",
    "MalformedRequestError",
    "ProxyError",
    "RetryingTransport",
    "StreamDecodeError",
    "TransportError",
    "UpstreamError",
    "backend_from_config",
    "get_bridge",
    "set_bridge",
]
