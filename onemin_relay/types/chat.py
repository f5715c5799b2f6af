"""OpenAI-compatible chat completion shapes produced by the relay.

Only the fields the relay actually emits are described here. Clients send
requests in the OpenAI format; the relay answers with ``chat.completion``
objects or ``chat.completion.chunk`` SSE frames.
"""

from typing import Any
from typing_extensions import TypedDict


class ContentPart(TypedDict, total=False):
    """A content part for multi-modal messages.

    Attributes:
        type: "text" or "image_url".
        text: Text content (for "text" type).
        image_url: Image URL object (for "image_url" type).
    """
    type: str
    text: str | None
    image_url: dict[str, Any] | None


class ChatMessage(TypedDict, total=False):
    """A message in a chat conversation.

    Attributes:
        role: "system", "user" or "assistant".
        content: A string, or a list of ContentPart for multi-modal input.
    """
    role: str
    content: str | list[ContentPart] | None


class Delta(TypedDict, total=False):
    """Incremental content in a streamed chunk. Empty on the final frame."""
    role: str | None
    content: str | None


class Usage(TypedDict):
    """Approximate token accounting."""
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class Choice(TypedDict):
    """The single choice of a non-streamed completion."""
    index: int
    message: ChatMessage
    finish_reason: str


class ChunkChoice(TypedDict):
    """The single choice of a streamed chunk."""
    index: int
    delta: Delta
    finish_reason: str | None


class ChatCompletionResponse(TypedDict):
    """A complete ``chat.completion`` object."""
    id: str
    object: str
    created: int
    model: str
    choices: list[Choice]
    usage: Usage


class ChatCompletionChunk(TypedDict):
    """One ``chat.completion.chunk`` SSE payload."""
    id: str
    object: str
    created: int
    model: str
    choices: list[ChunkChoice]
