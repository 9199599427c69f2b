"""Main FastAPI application for the Claude bridge."""

import logging
import socket
from typing import Any, Mapping, Optional

import httpx
from fastapi import FastAPI

from .api.routes import chat_completions, get_mapping, list_models, save_mapping
from .config_loader import get_server_settings, load_config
from .core.bridge import ClaudeBridge
from .core.registry import set_bridge
from .logging import setup_logging

# Initialize logging
logger = setup_logging()


def create_app(
    config: Optional[Mapping[str, Any]] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the FastAPI application around a freshly configured bridge.

    Args:
        config: Parsed configuration; loaded from CLAUDEBRIDGE_CONFIG when omitted.
        transport: Optional httpx transport for upstream calls (tests inject
            an ``httpx.MockTransport``).

    Returns:
        The configured FastAPI application instance.
    """
    if config is None:
        config = load_config()

    bridge = ClaudeBridge(config, transport=transport)
    # Set the bridge in the registry for routes to access
    set_bridge(bridge)

    host, port = get_server_settings(config)

    application = FastAPI(title="Claude Bridge")

    @application.on_event("startup")
    async def startup_event():
        """Handle application startup."""
        logger.info("Claude bridge starting up...")
        logger.info("Configured bind address %s:%s", host, port)
        if host == "0.0.0.0":
            logger.info("Reachable on local network at http://%s:%s", socket.gethostname(), port)
        logger.info(f"Forwarding to backend {bridge.backend.base_url}")
        if not bridge.backend.api_key:
            logger.warning("No backend API key configured; chat requests will fail")
        logger.info(f"Serving {len(bridge.mapper.get_mapping())} model aliases")

    # Register routes
    for prefix in ("/v1", ""):
        application.post(f"{prefix}/chat/completions")(chat_completions)
        application.get(f"{prefix}/models")(list_models)
    application.get("/api/mapping")(get_mapping)
    application.post("/api/mapping")(save_mapping)

    logger.info("FastAPI application created")
    return application


# Load configuration
config = load_config()
SERVER_HOST, SERVER_PORT = get_server_settings(config)
app = create_app(config)


# Export for external use
__all__ = ["app", "create_app", "config", "SERVER_HOST", "SERVER_PORT"]
