"""Turn heading nodes into (heading, body) entries and walk them to the root."""

from __future__ import annotations

import re
from typing import List, Sequence, Tuple

from ..documents.org_document import DocumentNode
from ..errors import StructuralError

Entry = Tuple[str, str]
AncestorChain = List[Entry]

_PROPERTIES_START = re.compile(r"^\s*:PROPERTIES:\s*$")
_PROPERTIES_END = re.compile(r"^\s*:END:\s*$")


def strip_metadata_block(lines: Sequence[str]) -> list[str]:
    """Remove the outermost ``:PROPERTIES:`` ... ``:END:`` span from ``lines``.

    The span runs from the first start marker to the last ``:END:`` after
    it. Without a start marker, or without a closing ``:END:``, the lines
    are returned unchanged.
    """

    result = list(lines)
    start = next((i for i, line in enumerate(result) if _PROPERTIES_START.match(line)), None)
    if start is None:
        return result
    end = None
    for index in range(len(result) - 1, start, -1):
        if _PROPERTIES_END.match(result[index]):
            end = index
            break
    if end is None:
        return result
    del result[start : end + 1]
    return result


def extract_entry(node: DocumentNode) -> Entry:
    """Return the display heading and conversational body of ``node``."""

    lines = strip_metadata_block(node.raw_body.split("\n"))
    # The first element is always the remainder of the heading line.
    return node.heading, "\n".join(lines[1:])


def collect_ancestors(node: DocumentNode | None) -> AncestorChain:
    """Return the root-first chain of entries ending with ``node`` itself."""

    if node is None:
        raise StructuralError(message="Cannot collect ancestors without a current node")
    chain: AncestorChain = []
    current: DocumentNode | None = node
    while current is not None:
        chain.insert(0, extract_entry(current))
        current = current.parent
    return chain


__all__ = ["AncestorChain", "Entry", "collect_ancestors", "extract_entry", "strip_metadata_block"]
