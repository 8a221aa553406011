"""Streaming chat client for OpenAI-compatible endpoints."""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, Iterable, List, Mapping, Union

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI, RateLimitError
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from ..conversation.messages import Message
from ..errors import TransportError

if TYPE_CHECKING:
    from ..services.settings import Settings

LOGGER = logging.getLogger(__name__)

# Event type -> attribute holding the text for that event.
_EVENT_TEXT_FIELDS: Mapping[str, str] = {
    "content.delta": "delta",
    "content.done": "content",
    "refusal.delta": "delta",
    "refusal.done": "refusal",
}
_DELTA_EVENTS = frozenset({"content.delta", "refusal.delta"})

ChatMessage = Union[Message, Mapping[str, Any]]


def is_transient(exc: BaseException) -> bool:
    """Return ``True`` for failures worth retrying: network trouble, timeouts, 429 and 5xx."""

    if isinstance(exc, (APIConnectionError, APITimeoutError, RateLimitError, httpx.TransportError)):
        return True
    if isinstance(exc, APIStatusError):
        return exc.status_code >= 500
    return False


@dataclass(slots=True)
class ClientSettings:
    """Connection and retry options for :class:`AIClient`."""

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    temperature: float | None = 0.2
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ClientSettings":
        return cls(
            base_url=settings.base_url,
            api_key=settings.api_key,
            model=settings.model,
            organization=settings.organization,
            temperature=settings.temperature,
            request_timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            retry_min_seconds=settings.retry_min_seconds,
            retry_max_seconds=settings.retry_max_seconds,
            default_headers=dict(settings.default_headers) or None,
            debug_logging=settings.debug_logging,
        )


@dataclass(slots=True)
class AIStreamEvent:
    """One normalized streaming event: a text delta or the final text of a part."""

    type: str
    content: str | None = None

    @property
    def is_delta(self) -> bool:
        return self.type in _DELTA_EVENTS


class AIClient:
    """Streams chat completions, retrying transient failures before any output.

    Once a fragment has reached the caller a failure surfaces as
    :class:`TransportError` instead of a retry, so streamed text is never
    written twice.
    """

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client or AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            default_headers=dict(settings.default_headers) if settings.default_headers else None,
        )

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def stream_chat(
        self,
        messages: Iterable[ChatMessage],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **extra_params: Any,
    ) -> AsyncIterator[AIStreamEvent]:
        """Yield normalized events for a chat completion over ``messages``."""

        request = self._request(messages, temperature=temperature, max_tokens=max_tokens, extra=extra_params)
        LOGGER.debug("Streaming %s message(s) to %s", len(request["messages"]), self._settings.model)
        if self._settings.debug_logging:
            LOGGER.debug("Chat request:\n%s", json.dumps(request, ensure_ascii=False, indent=2, default=str))

        emitted = 0
        async for attempt in self._retrying():
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    LOGGER.info("Retrying chat stream (attempt %s)", attempt.retry_state.attempt_number)
                try:
                    async with self._client.chat.completions.stream(**request) as stream:
                        async for raw_event in stream:
                            event = normalize_stream_event(raw_event)
                            if event is not None:
                                emitted += 1
                                yield event
                except Exception as exc:
                    if emitted and not isinstance(exc, TransportError):
                        raise TransportError(
                            message=f"Stream interrupted after partial output: {exc}",
                            details={"model": self._settings.model},
                        ) from exc
                    raise

    async def aclose(self) -> None:
        """Release the underlying HTTP client."""

        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(multiplier=self._settings.retry_min_seconds, max=self._settings.retry_max_seconds),
            retry=retry_if_exception(is_transient),
        )

    def _request(
        self,
        messages: Iterable[ChatMessage],
        *,
        temperature: float | None,
        max_tokens: int | None,
        extra: Mapping[str, Any],
    ) -> Dict[str, Any]:
        payload: List[Dict[str, Any]] = [
            message.to_payload() if isinstance(message, Message) else dict(message) for message in messages
        ]
        if not payload:
            raise TransportError(message="At least one message is required to start a chat")
        request: Dict[str, Any] = {"model": self._settings.model, "messages": payload}
        chosen_temperature = self._settings.temperature if temperature is None else temperature
        if chosen_temperature is not None:
            request["temperature"] = chosen_temperature
        if max_tokens is not None:
            request["max_tokens"] = max_tokens
        request.update(extra)
        return request


def normalize_stream_event(event: Any) -> AIStreamEvent | None:
    """Map an OpenAI stream event onto :class:`AIStreamEvent`; other events yield ``None``."""

    event_type = getattr(event, "type", None)
    text_field = _EVENT_TEXT_FIELDS.get(event_type or "")
    if text_field is None:
        return None
    text = getattr(event, text_field, None)
    if event_type in _DELTA_EVENTS and not text:
        return None
    return AIStreamEvent(type=event_type, content=None if text is None else str(text))


__all__ = ["AIClient", "AIStreamEvent", "ClientSettings", "is_transient", "normalize_stream_event"]
