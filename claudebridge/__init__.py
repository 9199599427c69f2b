"""claudebridge - OpenAI Chat Completions front end for Claude

A small HTTP service that accepts OpenAI-style chat requests, translates them
into Claude Messages requests, forwards them to a Claude-compatible backend
and translates the answers (including streams) back.

This module provides:
- ClaudeBridge: request conversion, upstream calls and response conversion
- ModelMapper: client-facing aliases mapped to backend model ids
- OpenAI-compatible API endpoints

Example:
    >>> from claudebridge.main import app
    >>> import uvicorn
    >>> uvicorn.run(app, host="0.0.0.0", port=8000)
"""

from .config_loader import load_config
from .core import Backend, ProxyError
from .core.bridge import ClaudeBridge
from .logging import logger, setup_logging
from .model_mapper import ModelMapper

__all__ = [
    "Backend",
    "ClaudeBridge",
    "ModelMapper",
    "ProxyError",
    "load_config",
    "logger",
    "setup_logging",
]
