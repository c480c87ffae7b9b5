"""Chat completion transport built around OpenAI-compatible endpoints."""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Protocol, runtime_checkable

import httpx
from openai import (
    APIConnectionError,
    APIError,
    APIStatusError,
    AsyncOpenAI,
    InternalServerError,
    RateLimitError,
)
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import ProtocolError, TransportError

LOGGER = logging.getLogger(__name__)

NO_RESPONSE_MESSAGE = "No response from OpenAI"
UNPARSEABLE_MESSAGE = "Failed to parse JSON response"
GENERIC_API_ERROR = "OpenAI API error"
_RETRYABLE_ERRORS = (APIConnectionError, RateLimitError, InternalServerError, httpx.TimeoutException)


@dataclass(slots=True)
class ChatRequest:
    """One non-streaming chat completion request."""

    model: str
    messages: List[Dict[str, str]] = field(default_factory=list)
    max_tokens: int = 500
    temperature: float = 0.7

    def to_payload(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [dict(message) for message in self.messages],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }


@dataclass(slots=True)
class ClientSettings:
    """Subset of configuration required to reach the chat service."""

    base_url: str
    model: str
    request_timeout: float | None = 30.0
    max_retries: int = 2
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    debug_logging: bool = False

    @classmethod
    def from_config(cls, config: Any) -> "ClientSettings":
        return cls(
            base_url=config.base_url,
            model=config.model,
            request_timeout=config.request_timeout,
            max_retries=config.max_retries,
            debug_logging=config.debug,
        )


@runtime_checkable
class ChatTransport(Protocol):
    """Performs the outbound call for a turn.

    Implementations raise :class:`TransportError` (or :class:`ProtocolError`)
    on failure. A transport may also expose ``abort()``, which the request
    controller calls when a request is cancelled.
    """

    async def complete(self, request: ChatRequest) -> str: ...


def parse_completion_payload(payload: Any) -> str:
    """Extract ``choices[0].message.content`` from a chat completion response.

    Raises:
        TransportError: The payload carries an ``error`` object.
        ProtocolError: The payload is not JSON, has no choices, or has no
            message content.
    """

    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except (TypeError, ValueError) as exc:
            raise ProtocolError(UNPARSEABLE_MESSAGE) from exc
    if not isinstance(payload, Mapping):
        raise ProtocolError(f"Unexpected response type: {type(payload).__name__}")

    error = payload.get("error")
    if error:
        if isinstance(error, Mapping):
            raise TransportError(
                str(error.get("message") or GENERIC_API_ERROR),
                error_type=error.get("type"),
            )
        raise TransportError(str(error))

    choices = payload.get("choices")
    if not choices:
        raise ProtocolError(NO_RESPONSE_MESSAGE)
    if not isinstance(choices, list) or not isinstance(choices[0], Mapping):
        raise ProtocolError("Unexpected choices payload in response")
    message = choices[0].get("message")
    content = message.get("content") if isinstance(message, Mapping) else None
    if not isinstance(content, str):
        raise ProtocolError("Response message has no content")
    return content


class OpenAITransport:
    """:class:`ChatTransport` backed by :class:`openai.AsyncOpenAI`.

    The API key and the debug flag are resolved on every request so changes
    saved while the app is running take effect immediately; one SDK client
    is kept per key. The
    SDK's own retries are disabled so the tenacity policy is the only one in
    effect, and only transient failures (connection problems, timeouts, rate
    limits, 5xx) are retried.
    """

    def __init__(
        self,
        settings: ClientSettings,
        *,
        api_key_provider: Callable[[], str],
        client_factory: Callable[[str], Any] | None = None,
        debug_enabled: Callable[[], bool] | None = None,
    ) -> None:
        self._settings = settings
        self._api_key_provider = api_key_provider
        self._debug_enabled = debug_enabled
        self._client_factory = client_factory or self._build_client
        self._clients: Dict[str, Any] = {}

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def complete(self, request: ChatRequest) -> str:
        """Send ``request`` and return the assistant's reply text."""

        client = self._client_for(self._api_key_provider())
        payload = request.to_payload()
        LOGGER.debug(
            "Requesting chat completion via %s with %d message(s)",
            payload["model"],
            len(payload["messages"]),
        )
        if self._payload_logging_enabled():
            self._log_prompt_payload(payload)

        try:
            async for attempt in self._retrying():
                with attempt:
                    response = await client.chat.completions.create(**payload)
        except APIStatusError as exc:
            raise _status_error(exc) from exc
        except (APIConnectionError, httpx.TimeoutException) as exc:
            raise TransportError(str(exc) or "Network error", error_type="connection_error") from exc
        except APIError as exc:
            raise TransportError(exc.message or GENERIC_API_ERROR) from exc

        data = response.model_dump() if hasattr(response, "model_dump") else response
        return parse_completion_payload(data)

    async def aclose(self) -> None:
        """Close the underlying OpenAI clients to release network resources."""

        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            close = getattr(client, "close", None)
            if close is None:
                continue
            result = close()
            if inspect.isawaitable(result):
                await result

    def _client_for(self, api_key: str) -> Any:
        client = self._clients.get(api_key)
        if client is None:
            client = self._client_factory(api_key)
            self._clients[api_key] = client
        return client

    def _build_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=api_key,
            base_url=self._settings.base_url,
            timeout=self._settings.request_timeout,
            max_retries=0,
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type(_RETRYABLE_ERRORS),
        )

    def _payload_logging_enabled(self) -> bool:
        if self._settings.debug_logging:
            return True
        return bool(self._debug_enabled and self._debug_enabled())

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("Chat payload (unserializable): %s", payload)
        else:
            LOGGER.debug("Chat payload:\n%s", serialized)


def _status_error(exc: APIStatusError) -> TransportError:
    body = exc.body
    if isinstance(body, Mapping) and isinstance(body.get("error"), Mapping):
        body = body["error"]
    if isinstance(body, Mapping):
        message = body.get("message") or exc.message or GENERIC_API_ERROR
        return TransportError(str(message), error_type=body.get("type"))
    return TransportError(exc.message or GENERIC_API_ERROR)


__all__ = [
    "ChatRequest",
    "ChatTransport",
    "ClientSettings",
    "OpenAITransport",
    "parse_completion_payload",
    "NO_RESPONSE_MESSAGE",
]
