"""Shared test helpers emulating the OpenAI streaming surface."""

from __future__ import annotations

from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any, Iterable


@dataclass
class FakeEvent:
    """Simple structure emulating ChatCompletionStreamEvent attributes."""

    type: str
    delta: str | None = None
    content: str | None = None
    refusal: str | None = None


class FakeStream:
    def __init__(self, events: Iterable[Any], *, fail_after: BaseException | None = None):
        self._iterator = iter(list(events))
        self._fail_after = fail_after

    def __aiter__(self) -> "FakeStream":
        return self

    async def __anext__(self) -> Any:
        try:
            return next(self._iterator)
        except StopIteration as exc:
            if self._fail_after is not None:
                raise self._fail_after
            raise StopAsyncIteration from exc


class FakeStreamContext:
    def __init__(self, events: Iterable[Any], *, fail_after: BaseException | None = None):
        self._events = list(events)
        self._fail_after = fail_after

    async def __aenter__(self) -> FakeStream:
        return FakeStream(self._events, fail_after=self._fail_after)

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class FakeCompletions:
    """Returns one stream per call; entries may be exceptions raised on open."""

    def __init__(self, *streams: Any):
        self._streams = list(streams)
        self.calls: list[dict[str, Any]] = []

    def stream(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        item = self._streams.pop(0) if len(self._streams) > 1 else self._streams[0]
        if isinstance(item, BaseException):
            raise item
        return item


def make_openai_client(*streams: Any) -> SimpleNamespace:
    completions = FakeCompletions(*streams)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))
