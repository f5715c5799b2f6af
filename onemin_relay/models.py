"""Model catalog, ``:online`` suffix parsing and web-search settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .config_loader import get_section
from .core.exceptions import InvalidRequestError, ModelNotFoundError

logger = logging.getLogger("onemin-relay")

ONLINE_SUFFIX = ":online"
DEFAULT_NUM_OF_SITE = 1
DEFAULT_MAX_WORD = 500

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_AVAILABLE_MODELS = (
    "gpt-4o-mini",
    "gpt-4o",
    "gpt-4-turbo",
    "gpt-3.5-turbo",
    "claude-3-5-sonnet-20240620",
    "claude-3-haiku-20240307",
    "gemini-1.5-pro",
    "gemini-1.5-flash",
    "mistral-large-latest",
    "deepseek-chat",
)
DEFAULT_VISION_MODELS = (
    "gpt-4o-mini",
    "gpt-4o",
    "gpt-4-turbo",
    "claude-3-5-sonnet-20240620",
    "gemini-1.5-pro",
)
DEFAULT_CODE_INTERPRETER_MODELS = ("gpt-4o", "gpt-4-turbo", "claude-3-5-sonnet-20240620")
DEFAULT_RETRIEVAL_MODELS = ("gpt-4o-mini", "gpt-4o", "gpt-4-turbo", "gemini-1.5-pro")


@dataclass(frozen=True)
class ModelParseResult:
    original_model: str
    has_online_suffix: bool
    is_valid: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class WebSearchConfig:
    web_search: bool
    num_of_site: int
    max_word: int


@dataclass(frozen=True)
class ResolvedModel:
    """A catalog model plus the web search settings requested via ``:online``."""

    name: str
    web_search: Optional[WebSearchConfig] = None


@dataclass
class ModelCatalog:
    """Models the backend accepts and what each of them can do."""

    available: tuple[str, ...] = DEFAULT_AVAILABLE_MODELS
    default: str = DEFAULT_MODEL
    vision: frozenset[str] = field(default_factory=lambda: frozenset(DEFAULT_VISION_MODELS))
    code_interpreter: frozenset[str] = field(
        default_factory=lambda: frozenset(DEFAULT_CODE_INTERPRETER_MODELS)
    )
    retrieval: frozenset[str] = field(default_factory=lambda: frozenset(DEFAULT_RETRIEVAL_MODELS))
    web_search_settings: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "ModelCatalog":
        section = get_section(config, "models")
        defaults = cls()
        available = tuple(section.get("available") or defaults.available)
        return cls(
            available=available,
            default=str(section.get("default") or defaults.default),
            vision=frozenset(section.get("vision") or defaults.vision),
            code_interpreter=frozenset(
                section.get("code_interpreter") or defaults.code_interpreter
            ),
            retrieval=frozenset(section.get("retrieval") or defaults.retrieval),
            web_search_settings=get_section(config, "web_search"),
        )

    def supports(self, model: str) -> bool:
        return model in self.available

    def capabilities(self, model: str) -> dict[str, bool]:
        return {
            "vision": model in self.vision,
            "code_interpreter": model in self.code_interpreter,
            "retrieval": model in self.retrieval,
        }


def parse_model_name(model_name: Any, catalog: Optional[ModelCatalog] = None) -> ModelParseResult:
    """Parse a client model name and detect the ``:online`` suffix."""
    catalog = catalog or ModelCatalog()

    if not model_name or not isinstance(model_name, str) or not model_name.strip():
        return ModelParseResult("", False, False, "Model name cannot be empty")

    trimmed = model_name.strip()

    if trimmed.count(":") > 1:
        return ModelParseResult(
            "", False, False,
            "Invalid model name format. Only ':online' suffix is supported",
        )

    if trimmed.endswith(ONLINE_SUFFIX):
        original = trimmed[: -len(ONLINE_SUFFIX)]
        if not original:
            return ModelParseResult("", True, False, "Model name cannot be empty")
        if original not in catalog.retrieval:
            return ModelParseResult(
                original, True, False,
                f"Model '{original}' does not support web search functionality",
            )
        return ModelParseResult(original, True, True)

    if ":" in trimmed:
        return ModelParseResult(
            "", False, False,
            "Invalid model name format. Only ':online' suffix is supported",
        )

    return ModelParseResult(trimmed, False, True)


def _positive_int(raw: Any, fallback: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return fallback
    return value if value > 0 else fallback


def get_web_search_config(settings: Optional[Mapping[str, Any]] = None) -> WebSearchConfig:
    """Web search settings with positive-integer fallbacks."""
    settings = settings or {}
    return WebSearchConfig(
        web_search=True,
        num_of_site=_positive_int(settings.get("num_of_site"), DEFAULT_NUM_OF_SITE),
        max_word=_positive_int(settings.get("max_word"), DEFAULT_MAX_WORD),
    )


def resolve_model(raw_model: Optional[str], catalog: ModelCatalog) -> ResolvedModel:
    """Validate a requested model against the catalog.

    Falls back to the catalog default when no model is given.

    Raises:
        InvalidRequestError: If the name is malformed.
        ModelNotFoundError: If the model is not in the catalog.
    """
    if raw_model is None:
        return ResolvedModel(catalog.default)

    parsed = parse_model_name(raw_model, catalog)
    if not parsed.is_valid:
        raise InvalidRequestError(
            parsed.error or "Invalid model name",
            code="model_not_found",
            param="model",
        )
    if not catalog.supports(parsed.original_model):
        raise ModelNotFoundError(parsed.original_model)

    if parsed.has_online_suffix:
        logger.debug("Web search enabled for model %s", parsed.original_model)
        return ResolvedModel(
            parsed.original_model,
            get_web_search_config(catalog.web_search_settings),
        )
    return ResolvedModel(parsed.original_model)
