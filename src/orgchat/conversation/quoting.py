"""Configurable chain of transforms applied to quoted regions before they seed a thread."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, Iterable, Sequence

from ..errors import ConfigurationError, ErrorCode

if TYPE_CHECKING:
    from ..services.settings import Settings

LOGGER = logging.getLogger(__name__)
_BLOCK_SYNTAX_LINE = re.compile(r"^([ \t]*)(,*(?:\*|#\+))", re.MULTILINE)


class SourceKind(Enum):
    """Broad content types a quoted region can come from."""

    PROSE = "prose"
    PROGRAMMING = "programming"
    MARKUP_WITH_CODE = "markup-with-code"


_EXTENSION_LANGUAGES: dict[str, tuple[str, SourceKind]] = {
    ".py": ("python", SourceKind.PROGRAMMING),
    ".pyi": ("python", SourceKind.PROGRAMMING),
    ".js": ("js", SourceKind.PROGRAMMING),
    ".mjs": ("js", SourceKind.PROGRAMMING),
    ".ts": ("typescript", SourceKind.PROGRAMMING),
    ".tsx": ("typescript", SourceKind.PROGRAMMING),
    ".sh": ("sh", SourceKind.PROGRAMMING),
    ".bash": ("sh", SourceKind.PROGRAMMING),
    ".el": ("emacs-lisp", SourceKind.PROGRAMMING),
    ".c": ("C", SourceKind.PROGRAMMING),
    ".h": ("C", SourceKind.PROGRAMMING),
    ".cpp": ("C++", SourceKind.PROGRAMMING),
    ".rs": ("rust", SourceKind.PROGRAMMING),
    ".go": ("go", SourceKind.PROGRAMMING),
    ".java": ("java", SourceKind.PROGRAMMING),
    ".rb": ("ruby", SourceKind.PROGRAMMING),
    ".sql": ("sql", SourceKind.PROGRAMMING),
    ".html": ("html", SourceKind.MARKUP_WITH_CODE),
    ".xml": ("xml", SourceKind.MARKUP_WITH_CODE),
    ".css": ("css", SourceKind.MARKUP_WITH_CODE),
    ".yaml": ("yaml", SourceKind.MARKUP_WITH_CODE),
    ".yml": ("yaml", SourceKind.MARKUP_WITH_CODE),
    ".json": ("json", SourceKind.MARKUP_WITH_CODE),
    ".tex": ("latex", SourceKind.MARKUP_WITH_CODE),
}


@dataclass(slots=True, frozen=True)
class SourceContext:
    """Where a quoted region came from: its short language name and kind."""

    language: str = "text"
    kind: SourceKind = SourceKind.PROSE

    @property
    def has_code(self) -> bool:
        return self.kind in (SourceKind.PROGRAMMING, SourceKind.MARKUP_WITH_CODE)

    @classmethod
    def from_path(cls, path: Path | str | None, *, language: str | None = None) -> "SourceContext":
        """Infer the context from a file suffix; ``language`` forces a code kind."""

        suffix = Path(path).suffix.lower() if path else ""
        detected = _EXTENSION_LANGUAGES.get(suffix)
        if language:
            kind = detected[1] if detected else SourceKind.PROGRAMMING
            return cls(language=language, kind=kind)
        if detected is None:
            return cls()
        return cls(language=detected[0], kind=detected[1])


RegionFilter = Callable[[str, SourceContext], str]


def ensure_trailing_newline(text: str, context: SourceContext) -> str:
    return text if text.endswith("\n") else f"{text}\n"


def enclose_in_code_block(text: str, context: SourceContext) -> str:
    """Wrap code in an Org source block tagged with the language name.

    Lines starting with ``*`` or ``#+`` (after optional commas) get one more
    leading comma, so the code cannot close the block or open a heading.
    """

    if not context.has_code:
        return text
    body = _BLOCK_SYNTAX_LINE.sub(r"\1,\2", text)
    return f"#+begin_src {context.language}\n{body}#+end_src\n"


REGION_FILTERS: Dict[str, RegionFilter] = {
    "ensure_trailing_newline": ensure_trailing_newline,
    "enclose_in_code_block": enclose_in_code_block,
}
DEFAULT_REGION_FILTERS: tuple[str, ...] = ("ensure_trailing_newline", "enclose_in_code_block")


class RegionQuotingPipeline:
    """Left-to-right composition of region filters."""

    def __init__(self, filters: Sequence[RegionFilter] | None = None) -> None:
        if filters is None:
            filters = [REGION_FILTERS[name] for name in DEFAULT_REGION_FILTERS]
        self._filters = tuple(filters)

    @property
    def filters(self) -> tuple[RegionFilter, ...]:
        return self._filters

    @classmethod
    def from_names(cls, names: Iterable[str]) -> "RegionQuotingPipeline":
        filters: list[RegionFilter] = []
        for name in names:
            region_filter = REGION_FILTERS.get(name)
            if region_filter is None:
                raise ConfigurationError(
                    error_code=ErrorCode.UNKNOWN_REGION_FILTER,
                    message=f"Unknown region filter {name!r}",
                    details={"available": sorted(REGION_FILTERS)},
                )
            filters.append(region_filter)
        return cls(filters)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "RegionQuotingPipeline":
        return cls.from_names(settings.region_filters)

    def quote(self, text: str, context: SourceContext) -> str:
        for region_filter in self._filters:
            text = region_filter(text, context)
        LOGGER.debug("Quoted %s character(s) from %s source", len(text), context.kind.value)
        return text


__all__ = [
    "DEFAULT_REGION_FILTERS",
    "REGION_FILTERS",
    "RegionFilter",
    "RegionQuotingPipeline",
    "SourceContext",
    "SourceKind",
    "enclose_in_code_block",
    "ensure_trailing_newline",
]
