"""Models listing endpoint - OpenAI compatible."""

import logging

from ...core.registry import get_bridge

logger = logging.getLogger("claudebridge")

# Fixed creation timestamp reported for every alias
MODEL_CREATED = 1700000000


async def list_models() -> dict:
    """List the client-facing model aliases in OpenAI API format.

    GET /v1/models

    Returns:
        A dictionary containing one entry per alias, with ``root`` naming the
        backend model it maps to.
    """
    logger.info("Received models list request")

    mapping = get_bridge().mapper.get_mapping()
    models = []
    for alias, model_id in mapping.items():
        models.append({
            "id": alias,
            "object": "model",
            "created": MODEL_CREATED,
            "owned_by": "anthropic",
            "permission": [],
            "root": model_id,
            "parent": None,
        })

    return {
        "object": "list",
        "data": models
    }
