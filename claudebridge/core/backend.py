"""Backend configuration and utilities."""

import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import httpx

logger = logging.getLogger("claudebridge")

DEFAULT_TIMEOUT = 60
DEFAULT_BASE_URL = "https://api.anthropic.com"
ANTHROPIC_VERSION = "2023-06-01"
MESSAGES_PATH = "/v1/messages"
STREAM_CLIENTS = {"httpx", "sdk"}


@dataclass
class Backend:
    """The Claude-compatible backend every request is forwarded to."""

    base_url: str
    api_key: str
    timeout: Optional[float] = None
    anthropic_version: str = ANTHROPIC_VERSION
    stream_client: str = "httpx"

    def build_url(self, path: str = MESSAGES_PATH) -> str:
        """Build the full URL for a backend request.

        A base URL that already ends in ``/v1`` does not get a second one.
        """
        base = self.base_url.rstrip("/")
        normalized_path = path or ""
        if not normalized_path.startswith("/"):
            normalized_path = f"/{normalized_path}"

        if base.endswith("/v1") and normalized_path.startswith("/v1"):
            normalized_path = normalized_path[len("/v1"):]
        return f"{base}{normalized_path}"

    @property
    def sdk_base_url(self) -> str:
        """Base URL in the form the anthropic SDK expects (without ``/v1``)."""
        base = self.base_url.rstrip("/")
        if base.endswith("/v1"):
            base = base[: -len("/v1")]
        return base


def backend_from_config(settings: Mapping[str, Any]) -> Backend:
    """Build the backend from ``proxy_settings.backend``.

    Missing values fall back to ``CLAUDE_BASE_URL`` / ``CLAUDE_API_KEY``.
    """
    base_url = str(
        settings.get("base_url") or os.getenv("CLAUDE_BASE_URL") or DEFAULT_BASE_URL
    ).strip()
    api_key = str(settings.get("api_key") or os.getenv("CLAUDE_API_KEY") or "").strip()

    timeout: Optional[float] = None
    raw_timeout = settings.get("timeout")
    if raw_timeout is not None:
        try:
            timeout = float(raw_timeout)
        except (TypeError, ValueError):
            logger.warning(f"Invalid backend timeout {raw_timeout!r}; using default")

    stream_client = str(settings.get("stream_client") or "httpx").strip().lower()
    if stream_client not in STREAM_CLIENTS:
        logger.warning(f"Unknown stream_client {stream_client!r}; using httpx")
        stream_client = "httpx"

    return Backend(
        base_url=base_url,
        api_key=api_key,
        timeout=timeout,
        anthropic_version=str(settings.get("anthropic_version") or ANTHROPIC_VERSION),
        stream_client=stream_client,
    )


HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}


def build_outbound_headers(backend: Backend) -> dict[str, str]:
    """Build headers for outbound requests to the backend."""
    headers = {
        "Content-Type": "application/json",
        "anthropic-version": backend.anthropic_version,
        # Explicitly request uncompressed responses
        "Accept-Encoding": "identity",
    }
    if backend.api_key:
        headers["x-api-key"] = backend.api_key
    return headers


def filter_response_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Filter response headers, removing hop-by-hop headers."""
    filtered: dict[str, str] = {}
    for key, value in headers.items():
        key_lower = key.lower()
        # Drop headers FastAPI will recompute or that no longer match the payload
        if key_lower in HOP_BY_HOP_HEADERS or key_lower in {
            "content-length",
            "transfer-encoding",
            "content-encoding"
        }:
            continue
        filtered[key] = value
    return filtered


def format_httpx_error(
    exc: Exception, url: Optional[str] = None, timeout: Optional[float] = None
) -> str:
    """Produce a detailed, user-facing description of an httpx error."""
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)

    request = None
    try:
        request = getattr(exc, "request", None)
    except RuntimeError:
        # httpx raises when .request was never attached
        request = None
    if request is not None:
        parts.append(f"request={request.method} {request.url}")
    elif url:
        parts.append(f"url={url}")

    if isinstance(exc, httpx.TimeoutException):
        parts.append(f"timeout={timeout or DEFAULT_TIMEOUT}s")

    return "; ".join(parts)


def safe_headers_for_log(headers: Mapping[str, str]) -> dict[str, str]:
    """Copy headers with the API key masked."""
    masked: dict[str, str] = {}
    for key, value in headers.items():
        if key.lower() in {"x-api-key", "authorization"}:
            masked[key] = f"{value[:6]}***" if value else ""
        else:
            masked[key] = value
    return masked
