"""API module for the bridge."""

from .routes import chat_completions, get_mapping, list_models, save_mapping

__all__ = [
    "chat_completions",
    "get_mapping",
    "list_models",
    "save_mapping",
]
