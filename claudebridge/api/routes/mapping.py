"""Model mapping management endpoints."""

import logging
from typing import Any

from fastapi import HTTPException

from ...core.registry import get_bridge
from ...model_mapper import DEFAULT_MODEL_MAPPING

logger = logging.getLogger("claudebridge")


async def get_mapping() -> dict:
    """Get the active alias table.

    GET /api/mapping
    """
    mapper = get_bridge().mapper
    return {
        "mapping": mapper.get_mapping(),
        "default_mapping": dict(DEFAULT_MODEL_MAPPING),
    }


async def save_mapping(body: dict[str, Any]) -> dict:
    """Replace the alias table (defaults overlaid by the given entries).

    POST /api/mapping

    Args:
        body: ``{"mapping": {alias: model_id, ...}}``

    Returns:
        Success status and the resulting table.
    """
    new_mapping = body.get("mapping")
    if not isinstance(new_mapping, dict):
        logger.error("Rejected mapping update: 'mapping' must be an object")
        raise HTTPException(status_code=400, detail="Invalid mapping format")

    mapper = get_bridge().mapper
    try:
        mapper.set_mapping(new_mapping)
    except ValueError as exc:
        logger.error(f"Rejected mapping update: {exc}")
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return {"success": True, "mapping": mapper.get_mapping()}
