"""Main FastAPI application for the 1min.ai relay."""

import logging
from typing import Any, Mapping, Optional

from fastapi import FastAPI

from .api.routes import chat_completions, list_models, translations_router
from .config_loader import load_config
from .core.registry import set_service
from .core.sse import wait_for_pending_streams
from .logging.recorder import TranslationRecorder
from .pipeline import ChatService

logger = logging.getLogger("onemin-relay")


def create_app(
    config: Optional[Mapping[str, Any]] = None,
    recorder: Optional[TranslationRecorder] = None,
) -> FastAPI:
    """Factory function to create the FastAPI application.

    Args:
        config: Parsed configuration. Loaded from the default YAML file when
            omitted.
        recorder: Lifecycle recorder; the process-wide one when omitted.

    Returns:
        The configured FastAPI application instance.
    """
    if config is None:
        config = load_config()

    service = ChatService.from_config(config, recorder=recorder)
    set_service(service)
    logger.info(f"Chat service initialized for backend {service.client.backend.base_url}")

    app = FastAPI(title="1min.ai Relay")

    @app.on_event("startup")
    async def startup_event():
        """Handle application startup."""
        logger.info("1min.ai relay starting up...")
        logger.info(f"Available models: {list(service.catalog.available)}")
        logger.info(f"Default model: {service.catalog.default}")
        logger.info("1min.ai relay ready to handle requests")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Let detached stream tasks finish before the loop goes away."""
        await wait_for_pending_streams()
        logger.info("All stream tasks completed")

    app.post("/v1/chat/completions")(chat_completions)
    app.get("/v1/models")(list_models)
    app.include_router(translations_router)

    return app


__all__ = ["create_app"]
