"""Spans over document text: character offsets and 1-based line selections."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class TextRange:
    """Half-open span ``[start, end)`` of absolute character offsets."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"Invalid text range [{self.start}, {self.end})")

    @property
    def length(self) -> int:
        return self.end - self.start

    def contains(self, offset: int) -> bool:
        """Return ``True`` when ``offset`` falls inside ``[start, end)``."""

        return self.start <= offset < self.end

    def encloses(self, other: "TextRange") -> bool:
        return self.start <= other.start and other.end <= self.end

    def slice(self, text: str) -> str:
        return text[self.start : self.end]

    def to_tuple(self) -> tuple[int, int]:
        return (self.start, self.end)


@dataclass(slots=True, frozen=True)
class LineRange:
    """One-based, inclusive span of lines used to select a quoted region."""

    start_line: int
    end_line: int

    def __post_init__(self) -> None:
        start = max(1, int(self.start_line))
        end = max(1, int(self.end_line))
        if end < start:
            start, end = end, start
        object.__setattr__(self, "start_line", start)
        object.__setattr__(self, "end_line", end)

    @property
    def line_count(self) -> int:
        return (self.end_line - self.start_line) + 1

    def select(self, text: str) -> str:
        """Return the lines of ``text`` covered by the span, newlines included."""

        lines = text.splitlines(keepends=True)
        return "".join(lines[self.start_line - 1 : self.end_line])

    @classmethod
    def parse(cls, value: str) -> "LineRange":
        """Parse ``"START:END"`` (or a single ``"N"``) into a :class:`LineRange`."""

        raw = (value or "").strip()
        head, sep, tail = raw.partition(":")
        try:
            start = int(head)
            end = int(tail) if sep else start
        except ValueError as exc:
            raise ValueError(f"Line range must look like START:END, got {value!r}") from exc
        return cls(start, end)


__all__ = ["TextRange", "LineRange"]
