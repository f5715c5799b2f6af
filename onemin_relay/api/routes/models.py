"""Models listing endpoint - OpenAI compatible."""

import logging
import time

from ...core.registry import get_service

logger = logging.getLogger("onemin-relay")


async def list_models() -> dict:
    """List available models in OpenAI API format.

    GET /v1/models

    Returns:
        A dictionary containing the list of available models with their
        capability flags.
    """
    logger.info("Received models list request")

    catalog = get_service().catalog
    created = int(time.time())
    models = []
    for model_name in catalog.available:
        models.append({
            "id": model_name,
            "object": "model",
            "created": created,
            "owned_by": "1min-ai",
            "permission": [],
            "root": model_name,
            "parent": None,
            "capabilities": catalog.capabilities(model_name),
        })

    return {
        "object": "list",
        "data": models
    }
