"""Validated inbound chat request."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from ..core.exceptions import InvalidRequestError
from .chat import ChatMessage


def _optional_number(payload: Mapping[str, Any], key: str, kind: type) -> Any:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidRequestError(
            f"'{key}' must be a number", code="invalid_type", param=key
        )
    return kind(value)


@dataclass
class ChatRequest:
    """An OpenAI-style chat completion request after validation."""

    messages: list[ChatMessage]
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    stream: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> "ChatRequest":
        """Build a request from a decoded JSON body.

        Raises:
            InvalidRequestError: If the payload is not an object or the
                messages array is missing or malformed.
        """
        if not isinstance(payload, Mapping):
            raise InvalidRequestError(
                "Request body must be a JSON object", code="invalid_json_shape"
            )

        messages = payload.get("messages")
        if not isinstance(messages, list) or not messages:
            raise InvalidRequestError(
                "Messages field is required and must be an array",
                code="missing_parameter",
                param="messages",
            )
        for message in messages:
            if not isinstance(message, Mapping) or not isinstance(message.get("role"), str):
                raise InvalidRequestError(
                    "Each message must be an object with a 'role'",
                    code="invalid_message",
                    param="messages",
                )

        model = payload.get("model")
        if model is not None and not isinstance(model, str):
            raise InvalidRequestError(
                "'model' must be a string", code="invalid_type", param="model"
            )

        known = {"messages", "model", "temperature", "max_tokens", "stream"}
        return cls(
            messages=[dict(message) for message in messages],  # type: ignore[misc]
            model=model or None,
            temperature=_optional_number(payload, "temperature", float),
            max_tokens=_optional_number(payload, "max_tokens", int),
            stream=bool(payload.get("stream")),
            extra={k: v for k, v in payload.items() if k not in known},
        )

    def text_length(self) -> int:
        """Total characters of the string message contents."""
        return sum(
            len(message["content"])
            for message in self.messages
            if isinstance(message.get("content"), str)
        )

    def joined_text(self) -> str:
        """String message contents joined with a single space."""
        return " ".join(
            message["content"] if isinstance(message.get("content"), str) else ""
            for message in self.messages
        )
