"""API routes for the bridge."""

from .chat import chat_completions, handle_chat_request
from .mapping import get_mapping, save_mapping
from .models import list_models

__all__ = [
    "chat_completions",
    "get_mapping",
    "handle_chat_request",
    "list_models",
    "save_mapping",
]
