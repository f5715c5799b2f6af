"""Backend configuration and the 1min.ai chat call."""

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Mapping, Optional, Sequence

import httpx

from .exceptions import BackendCallError, ConfigurationError
from .upstream_transport import get_upstream_transport

logger = logging.getLogger("onemin-relay")

DEFAULT_API_BASE = "https://api.1min.ai/api"
DEFAULT_TIMEOUT = 120
FEATURE_TYPE_CHAT = "CHAT_WITH_AI"
NO_RESPONSE_TEXT = "No response generated"

_ROLE_LABELS = {"system": "System", "user": "User", "assistant": "Assistant"}


@dataclass
class Backend:
    """The upstream features endpoint and its credentials."""

    base_url: str
    api_key: str
    timeout: Optional[float] = None

    def build_url(self, streaming: bool = False) -> str:
        """Build the features URL, adding the streaming flag when needed."""
        url = f"{self.base_url.rstrip('/')}/features"
        if streaming:
            url = f"{url}?isStreaming=true"
        return url

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "Backend":
        section = config.get("backend") or {}
        if not isinstance(section, Mapping):
            raise ConfigurationError("Config section 'backend' must be a mapping")
        base = str(section.get("api_base") or DEFAULT_API_BASE).strip()
        timeout = section.get("request_timeout")
        try:
            timeout_val = float(timeout) if timeout is not None else None
        except (TypeError, ValueError):
            timeout_val = None
        return cls(
            base_url=base,
            api_key=str(section.get("api_key") or ""),
            timeout=timeout_val,
        )


def format_httpx_error(exc: Any, backend: Backend, url: Optional[str] = None) -> str:
    """Produce a detailed, user-facing description of an httpx error."""
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)

    try:
        request = exc.request
    except (AttributeError, RuntimeError):
        request = None
    if request is not None:
        parts.append(f"request={request.method} {request.url}")
    elif url:
        parts.append(f"url={url}")

    if isinstance(exc, httpx.TimeoutException):
        timeout = backend.timeout or DEFAULT_TIMEOUT
        parts.append(f"timeout={timeout}s")

    return "; ".join(parts)


def build_outbound_headers(api_key: str) -> dict[str, str]:
    """Headers for a features request."""
    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["API-KEY"] = api_key
    # Explicitly request uncompressed responses
    headers["Accept-Encoding"] = "identity"
    return headers


def _message_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        texts = []
        for part in content:
            if not isinstance(part, Mapping):
                continue
            if part.get("type") == "text" and isinstance(part.get("text"), str):
                texts.append(part["text"])
            else:
                logger.debug("Dropping unsupported content part of type %s", part.get("type"))
        return "\n".join(texts)
    return ""


def build_prompt(messages: Sequence[Mapping[str, Any]]) -> str:
    """Flatten chat messages into the single prompt the backend accepts."""
    if len(messages) == 1:
        return _message_text(messages[0].get("content"))
    lines = []
    for message in messages:
        text = _message_text(message.get("content"))
        if not text:
            continue
        role = str(message.get("role") or "user")
        lines.append(f"{_ROLE_LABELS.get(role, role.capitalize())}: {text}")
    return "\n\n".join(lines)


def build_chat_request_body(
    messages: Sequence[Mapping[str, Any]],
    model: str,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    web_search: Optional[Any] = None,
) -> dict[str, Any]:
    """Build a CHAT_WITH_AI features payload."""
    prompt_object: dict[str, Any] = {
        "prompt": build_prompt(messages),
        "isMixed": False,
        "webSearch": False,
    }
    if web_search is not None:
        prompt_object["webSearch"] = True
        prompt_object["numOfSite"] = web_search.num_of_site
        prompt_object["maxWord"] = web_search.max_word
    if temperature is not None:
        prompt_object["temperature"] = temperature
    if max_tokens is not None:
        prompt_object["maxTokens"] = max_tokens
    return {
        "type": FEATURE_TYPE_CHAT,
        "model": model,
        "promptObject": prompt_object,
    }


def extract_result_text(data: Any) -> str:
    """Pull the generated text out of a features response body."""
    if not isinstance(data, Mapping):
        return NO_RESPONSE_TEXT
    record = data.get("aiRecord")
    if isinstance(record, Mapping):
        detail = record.get("aiRecordDetail")
        if isinstance(detail, Mapping):
            result = detail.get("resultObject")
            if isinstance(result, list) and result and result[0]:
                return str(result[0])
            if isinstance(result, str) and result:
                return result
    content = data.get("content")
    if isinstance(content, str) and content:
        return content
    return NO_RESPONSE_TEXT


class BackendStream:
    """An open streamed response; the caller must ``aclose`` it."""

    def __init__(self, response: httpx.Response, client: httpx.AsyncClient) -> None:
        self.response = response
        self._client = client
        self._closed = False

    def aiter_bytes(self) -> AsyncIterator[bytes]:
        return self.response.aiter_bytes()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.response.aclose()
        await self._client.aclose()


class BackendClient:
    """Send chat payloads to the features endpoint."""

    def __init__(self, backend: Backend) -> None:
        self.backend = backend

    async def send_chat(self, payload: Mapping[str, Any], streaming: bool = False) -> Any:
        """Send one chat payload.

        Returns the decoded JSON body when ``streaming`` is False, otherwise an
        open :class:`BackendStream`.

        Raises:
            BackendCallError: On a non-success status, a transport failure, or
                a non-JSON body.
        """
        if streaming:
            return await self._send_streaming(payload)
        return await self._send(payload)

    def _timeout(self) -> float:
        return self.backend.timeout or DEFAULT_TIMEOUT

    async def _send(self, payload: Mapping[str, Any]) -> Any:
        url = self.backend.build_url(streaming=False)
        headers = build_outbound_headers(self.backend.api_key)
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        transport = get_upstream_transport(url)

        logger.debug(f"Initiating non-streaming request to {url} ({len(body)} bytes)")
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout(), transport=transport, follow_redirects=True
            ) as client:
                resp = await client.post(url, headers=headers, content=body)
        except httpx.HTTPError as exc:
            detail = format_httpx_error(exc, self.backend, url=url)
            logger.error(f"Backend request error: {detail}")
            raise BackendCallError(f"backend request error: {detail}") from exc

        logger.debug(f"Received response from {url}: status {resp.status_code}")
        if resp.status_code >= 400:
            raise BackendCallError(
                f"backend returned status {resp.status_code}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise BackendCallError(
                f"backend returned a non-JSON body: {exc}",
                status_code=resp.status_code,
            ) from exc

    async def _send_streaming(self, payload: Mapping[str, Any]) -> BackendStream:
        url = self.backend.build_url(streaming=True)
        headers = build_outbound_headers(self.backend.api_key)
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        timeout = self._timeout()
        stream_timeout = httpx.Timeout(connect=timeout, read=None, write=timeout, pool=timeout)
        transport = get_upstream_transport(url)

        client = httpx.AsyncClient(
            timeout=stream_timeout, transport=transport, follow_redirects=True
        )
        try:
            request = client.build_request("POST", url, headers=headers, content=body)
            logger.debug(f"Sending streaming request to {url}")
            resp = await client.send(request, stream=True)
        except httpx.HTTPError as exc:
            await client.aclose()
            detail = format_httpx_error(exc, self.backend, url=url)
            logger.error(f"Failed to send streaming request: {detail}")
            raise BackendCallError(f"backend stream error: {detail}") from exc
        except Exception:
            await client.aclose()
            raise

        if resp.status_code >= 400:
            await resp.aread()
            await resp.aclose()
            await client.aclose()
            logger.warning(
                f"Streaming request to {url} returned error status {resp.status_code}"
            )
            raise BackendCallError(
                f"backend stream returned status {resp.status_code}",
                status_code=resp.status_code,
            )

        logger.info(f"Streaming request to {url} successful, status {resp.status_code}")
        return BackendStream(resp, client)
