"""Client-facing model aliases mapped to backend model identifiers."""

from __future__ import annotations

import logging
from typing import Mapping

logger = logging.getLogger("claudebridge")

# Built-in table; every replacement is merged over it.
DEFAULT_MODEL_MAPPING: dict[str, str] = {
    # Aliases that also switch on extended reasoning
    "tinyy-model": "claude-sonnet-4-5-20250929",
    "bigger-model": "claude-opus-4-5-20251101",
    # Common OpenAI names
    "gpt-4": "claude-opus-4-5-20251101",
    "gpt-4o": "claude-sonnet-4-5-20250929",
    "gpt-4-turbo": "claude-sonnet-4-5-20250929",
    "gpt-3.5-turbo": "claude-haiku-4-5-20251001",
}

REASONING_ALIASES = frozenset({"tinyy-model", "bigger-model"})


class ModelMapper:
    """Resolve model aliases against a replaceable mapping table.

    The table is never mutated in place. ``set_mapping`` builds a new dict
    and swaps the reference, so concurrent readers see either the old or
    the new table.
    """

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self._mapping: dict[str, str] = dict(DEFAULT_MODEL_MAPPING)
        if initial:
            self.set_mapping(initial)

    def resolve(self, alias: str) -> str:
        """Return the mapped model id, or ``alias`` unchanged when unmapped."""
        mapped = self._mapping.get(alias)
        return mapped or alias

    def set_mapping(self, partial: Mapping[str, str]) -> None:
        """Replace the active table with the defaults overlaid by ``partial``."""
        if not isinstance(partial, Mapping):
            raise ValueError("model mapping must be an object of alias -> model id")
        for alias, model_id in partial.items():
            if not isinstance(alias, str) or not isinstance(model_id, str):
                raise ValueError(
                    f"model mapping entries must be strings, got {alias!r}: {model_id!r}"
                )
        self._mapping = {**DEFAULT_MODEL_MAPPING, **partial}
        logger.info(f"Model mapping updated ({len(self._mapping)} aliases)")

    def get_mapping(self) -> dict[str, str]:
        return dict(self._mapping)

    @staticmethod
    def is_reasoning_alias(alias: str) -> bool:
        return alias in REASONING_ALIASES
