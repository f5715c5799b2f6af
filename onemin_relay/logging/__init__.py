"""Logging module for the relay."""

from .recorder import (
    LifecycleEvent,
    TranslationMetrics,
    TranslationRecorder,
    get_recorder,
    set_recorder,
)
from .setup import logger, setup_logging

__all__ = [
    "LifecycleEvent",
    "TranslationMetrics",
    "TranslationRecorder",
    "get_recorder",
    "logger",
    "set_recorder",
    "setup_logging",
]
