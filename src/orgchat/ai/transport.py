"""Transports that turn a message sequence into text written at a marker."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence, runtime_checkable

from ..conversation.messages import Message
from ..documents.markers import InsertionMarker
from ..errors import ErrorCode, TransportError
from .client import AIClient

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class Transport(Protocol):
    """Capability that streams a reply into the document at ``marker``.

    ``send`` may return anything; callers that want to know when streaming
    finished can await the result when it is awaitable.
    """

    def send(self, messages: Sequence[Message], marker: InsertionMarker) -> Any:
        ...


class StreamingTransport:
    """Streams chat completions from :class:`AIClient` into a marker.

    ``send`` schedules the stream on the running event loop and returns the
    task immediately. Fragments are appended at the marker in arrival order.
    Refusal deltas are written like content deltas, so a refused request
    leaves the model's explanation in the ``AI`` node instead of an empty body.
    """

    def __init__(self, client: AIClient, *, max_tokens: int | None = None) -> None:
        self._client = client
        self._max_tokens = max_tokens
        self._tasks: set[asyncio.Task[int]] = set()

    def send(self, messages: Sequence[Message], marker: InsertionMarker) -> asyncio.Task[int]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            raise TransportError(
                error_code=ErrorCode.TRANSPORT_UNAVAILABLE,
                message="Streaming requires a running asyncio event loop",
            ) from exc
        task = loop.create_task(self._pump(list(messages), marker))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _pump(self, messages: list[Message], marker: InsertionMarker) -> int:
        written = 0
        try:
            async for event in self._client.stream_chat(messages, max_tokens=self._max_tokens):
                if event.is_delta and event.content:
                    marker.insert(event.content)
                    written += len(event.content)
        except TransportError:
            raise
        except Exception as exc:
            LOGGER.warning("Streaming failed after %s character(s): %s", written, exc)
            raise TransportError(
                message=f"Streaming failed: {exc}",
                details={"written": written},
            ) from exc
        LOGGER.debug("Streamed %s character(s) into marker at %s", written, marker.position)
        return written


@dataclass
class RecordingTransport:
    """In-memory transport that records requests and writes canned chunks.

    ``snapshots`` keeps the document text as it was when ``send`` was called.
    Setting ``error`` makes ``send`` raise it instead.
    """

    chunks: Sequence[str] = ()
    error: BaseException | None = None
    calls: list[tuple[list[Message], InsertionMarker]] = field(default_factory=list)
    snapshots: list[str] = field(default_factory=list)

    def send(self, messages: Sequence[Message], marker: InsertionMarker) -> None:
        self.calls.append((list(messages), marker))
        self.snapshots.append(marker.document.text)
        if self.error is not None:
            raise self.error
        for chunk in self.chunks:
            marker.insert(chunk)


__all__ = ["RecordingTransport", "StreamingTransport", "Transport"]
