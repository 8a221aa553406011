"""In-memory Org outline: text buffer, heading tree snapshots and markers."""

from __future__ import annotations

import hashlib
import logging
import re
import uuid
import weakref
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Optional, Sequence

from ..core.ranges import TextRange
from ..errors import ErrorCode, StructuralError
from .markers import InsertionMarker

LOGGER = logging.getLogger(__name__)

DEFAULT_TODO_KEYWORDS: tuple[str, ...] = ("TODO", "DONE")
_HEADING_PATTERN = re.compile(r"^(?P<stars>\*+)[ \t]+(?P<title>.*)$", re.MULTILINE)
_PRIORITY_PATTERN = re.compile(r"^\[#[A-Za-z0-9]\]\s*")
_TAGS_PATTERN = re.compile(r"\s+:(?:[\w@#%]+:)+\s*$")
_HEADING_LINE_START = re.compile(r"^(?=\*+[ \t])", re.MULTILINE)


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


def _hash_text(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def escape_heading_lines(text: str) -> str:
    """Prefix a comma to every line of ``text`` that would parse as a heading."""

    return _HEADING_LINE_START.sub(",", text)


def clean_heading(raw_title: str, todo_keywords: Iterable[str] = DEFAULT_TODO_KEYWORDS) -> str:
    """Strip keyword, priority cookie, ``COMMENT`` marker and tags from a heading title."""

    title = raw_title.strip()
    head, _, rest = title.partition(" ")
    if head in set(todo_keywords):
        title = rest.lstrip()
    title = _PRIORITY_PATTERN.sub("", title)
    head, _, rest = title.partition(" ")
    if head == "COMMENT":
        title = rest.lstrip()
    title = _TAGS_PATTERN.sub("", title)
    if re.fullmatch(r":(?:[\w@#%]+:)+", title):
        return ""
    return title.strip()


@dataclass(slots=True)
class DocumentMetadata:
    """Metadata describing where a document came from."""

    path: Optional[Path] = None
    encoding: str = "utf-8"
    newline: str = "\n"
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)


@dataclass(slots=True, eq=False)
class DocumentNode:
    """Snapshot of one heading and its subtree at a given document version.

    ``raw_body`` is the region from the end of the heading title up to the
    newline preceding the next heading, so it always starts with the
    remainder of the heading line. The parent relation is a non-owning index
    into the outline's preorder node list.
    """

    level: int
    heading: str
    raw_heading: str
    heading_range: TextRange
    body_range: TextRange
    subtree_range: TextRange
    raw_body: str
    version_id: int
    index: int
    parent_index: Optional[int] = None
    children: list["DocumentNode"] = field(default_factory=list)
    outline: Optional["Outline"] = field(default=None, repr=False)

    @property
    def parent(self) -> Optional["DocumentNode"]:
        if self.parent_index is None or self.outline is None:
            return None
        return self.outline.nodes[self.parent_index]

    @property
    def depth(self) -> int:
        depth = 1
        node = self.parent
        while node is not None:
            depth += 1
            node = node.parent
        return depth

    def iter_subtree(self) -> Iterator["DocumentNode"]:
        yield self
        for child in self.children:
            yield from child.iter_subtree()


@dataclass(slots=True)
class Outline:
    """Heading tree parsed from one document version."""

    version_id: int
    nodes: tuple[DocumentNode, ...] = ()
    roots: tuple[DocumentNode, ...] = ()


def parse_outline(
    text: str,
    *,
    version_id: int = 0,
    todo_keywords: Sequence[str] = DEFAULT_TODO_KEYWORDS,
) -> Outline:
    """Parse ``text`` into an :class:`Outline` of :class:`DocumentNode` snapshots."""

    matches = list(_HEADING_PATTERN.finditer(text))
    nodes: list[DocumentNode] = []
    roots: list[DocumentNode] = []
    stack: list[DocumentNode] = []
    text_length = len(text)

    for position, match in enumerate(matches):
        level = len(match.group("stars"))
        line_start = match.start()
        title_end = match.end()
        if position + 1 < len(matches):
            next_start = matches[position + 1].start()
            body_end = next_start - 1
        else:
            body_end = text_length
            if body_end > title_end and text.endswith("\n"):
                body_end -= 1
        body_end = max(title_end, body_end)

        subtree_end = text_length
        for candidate in matches[position + 1 :]:
            if len(candidate.group("stars")) <= level:
                subtree_end = candidate.start()
                break

        while stack and stack[-1].level >= level:
            stack.pop()
        parent = stack[-1] if stack else None
        raw_title = match.group("title")
        node = DocumentNode(
            level=level,
            heading=clean_heading(raw_title, todo_keywords),
            raw_heading=raw_title,
            heading_range=TextRange(line_start, title_end),
            body_range=TextRange(title_end, body_end),
            subtree_range=TextRange(line_start, subtree_end),
            raw_body=text[title_end:body_end],
            version_id=version_id,
            index=len(nodes),
            parent_index=parent.index if parent is not None else None,
        )
        nodes.append(node)
        if parent is None:
            roots.append(node)
        else:
            parent.children.append(node)
        stack.append(node)

    outline = Outline(version_id=version_id, nodes=tuple(nodes), roots=tuple(roots))
    for node in nodes:
        node.outline = outline
    return outline


class OrgDocument:
    """Mutable Org text buffer exposing its heading tree and insertion markers."""

    def __init__(
        self,
        text: str = "",
        *,
        metadata: DocumentMetadata | None = None,
        todo_keywords: Sequence[str] = DEFAULT_TODO_KEYWORDS,
    ) -> None:
        self._text = text
        self.metadata = metadata or DocumentMetadata()
        self.todo_keywords = tuple(todo_keywords)
        self.document_id = uuid.uuid4().hex
        self.version_id = 1
        self.content_hash = _hash_text(text)
        self.dirty = False
        self._markers: "weakref.WeakSet[InsertionMarker]" = weakref.WeakSet()
        self._outline: Outline | None = None

    @classmethod
    def from_text(
        cls,
        text: str,
        *,
        path: Path | None = None,
        encoding: str = "utf-8",
        newline: str = "\n",
        **kwargs: Any,
    ) -> "OrgDocument":
        metadata = DocumentMetadata(path=path, encoding=encoding, newline=newline)
        return cls(text, metadata=metadata, **kwargs)

    @property
    def text(self) -> str:
        return self._text

    def __len__(self) -> int:
        return len(self._text)

    # ------------------------------------------------------------------
    # Tree access
    # ------------------------------------------------------------------
    def outline(self) -> Outline:
        """Return the heading tree for the current version, parsing lazily."""

        if self._outline is None or self._outline.version_id != self.version_id:
            self._outline = parse_outline(
                self._text, version_id=self.version_id, todo_keywords=self.todo_keywords
            )
        return self._outline

    def roots(self) -> tuple[DocumentNode, ...]:
        return self.outline().roots

    def iter_nodes(self) -> Iterator[DocumentNode]:
        return iter(self.outline().nodes)

    def node_at(self, offset: int) -> DocumentNode:
        """Return the innermost node whose heading starts at or before ``offset``."""

        self._check_offset(offset)
        current: DocumentNode | None = None
        for node in self.outline().nodes:
            if node.heading_range.start > offset:
                break
            current = node
        if current is None:
            raise StructuralError(
                message="Position precedes the first heading",
                details={"offset": offset},
            )
        return current

    def node_at_line(self, line: int) -> DocumentNode:
        """Return the node enclosing the 1-based ``line``."""

        if line < 1:
            raise StructuralError(
                error_code=ErrorCode.OFFSET_OUT_OF_BOUNDS,
                message=f"Line {line} is out of bounds",
                details={"line": line},
            )
        offset = 0
        for _ in range(line - 1):
            newline = self._text.find("\n", offset)
            if newline < 0:
                raise StructuralError(
                    error_code=ErrorCode.OFFSET_OUT_OF_BOUNDS,
                    message=f"Line {line} is out of bounds",
                    details={"line": line},
                )
            offset = newline + 1
        return self.node_at(offset)

    def last_node(self) -> DocumentNode:
        nodes = self.outline().nodes
        if not nodes:
            raise StructuralError(message="Document has no headings")
        return nodes[-1]

    def ensure_current(self, node: DocumentNode) -> DocumentNode:
        """Raise :class:`StructuralError` when ``node`` belongs to an older version."""

        if node.version_id != self.version_id or node.outline is None:
            raise StructuralError(
                error_code=ErrorCode.STALE_NODE,
                message="Node belongs to an outdated version of the document",
                details={"node_version": node.version_id, "document_version": self.version_id},
                suggestion="Look the node up again after editing the document",
            )
        return node

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def insert(self, offset: int, text: str) -> None:
        """Insert ``text`` at ``offset`` and rebase every attached marker."""

        self._check_offset(offset)
        if not text:
            return
        self._text = self._text[:offset] + text + self._text[offset:]
        for marker in list(self._markers):
            marker._rebase(offset, len(text))
        self.dirty = True
        self.version_id += 1
        self.content_hash = _hash_text(self._text)
        self.metadata.updated_at = _utcnow()

    def append_heading(self, level: int, title: str) -> int:
        """Append ``title`` as a level-``level`` heading followed by a blank line.

        Returns the offset of the blank line, where input is expected.
        """

        prefix = "" if not self._text or self._text.endswith("\n") else "\n"
        heading = f"{'*' * max(1, level)} {title}\n"
        start = len(self._text)
        self.insert(start, f"{prefix}{heading}\n")
        return start + len(prefix) + len(heading)

    def create_marker(self, offset: int, *, advances: bool = True) -> InsertionMarker:
        self._check_offset(offset)
        marker = InsertionMarker(self, offset, advances=advances)
        self._markers.add(marker)
        return marker

    def release_marker(self, marker: InsertionMarker) -> None:
        self._markers.discard(marker)
        marker._orphan()

    @property
    def marker_count(self) -> int:
        return len(self._markers)

    def snapshot(self) -> Dict[str, Any]:
        """Return a serializable summary of the document state."""

        payload: Dict[str, Any] = {
            "document_id": self.document_id,
            "version_id": self.version_id,
            "content_hash": self.content_hash,
            "dirty": self.dirty,
            "length": len(self._text),
            "headings": len(self.outline().nodes),
        }
        if self.metadata.path:
            payload["path"] = str(self.metadata.path)
        return payload

    def _check_offset(self, offset: int) -> None:
        if offset < 0 or offset > len(self._text):
            raise StructuralError(
                error_code=ErrorCode.OFFSET_OUT_OF_BOUNDS,
                message=f"Offset {offset} is outside the document",
                details={"offset": offset, "length": len(self._text)},
            )


__all__ = [
    "DEFAULT_TODO_KEYWORDS",
    "DocumentMetadata",
    "DocumentNode",
    "Outline",
    "OrgDocument",
    "clean_heading",
    "escape_heading_lines",
    "parse_outline",
]
