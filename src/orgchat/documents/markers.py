"""Position handles that stay valid while text is inserted around them."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..errors import ErrorCode, StructuralError

if TYPE_CHECKING:
    from .org_document import OrgDocument

LOGGER = logging.getLogger(__name__)


class InsertionMarker:
    """Live offset into an :class:`OrgDocument`.

    The document rebases every attached marker on each insertion: text
    inserted before the marker pushes it forward, and text inserted exactly
    at the marker pushes it forward only when ``advances`` is true. Writing
    through :meth:`insert` therefore grows the document monotonically at the
    marker, which is how streamed fragments stay in arrival order.
    """

    __slots__ = ("_document", "_position", "advances", "__weakref__")

    def __init__(self, document: "OrgDocument", position: int, *, advances: bool = True) -> None:
        self._document: "OrgDocument | None" = document
        self._position = position
        self.advances = advances

    def __repr__(self) -> str:
        state = "attached" if self.attached else "detached"
        return f"InsertionMarker(position={self._position}, {state})"

    @property
    def attached(self) -> bool:
        return self._document is not None

    @property
    def position(self) -> int:
        return self._position

    @property
    def document(self) -> "OrgDocument":
        if self._document is None:
            raise StructuralError(
                error_code=ErrorCode.MARKER_DETACHED,
                message="Marker is no longer attached to a document",
            )
        return self._document

    def insert(self, text: str) -> int:
        """Insert ``text`` at the marker's live position and return the new position."""

        if not text:
            return self._position
        self.document.insert(self._position, text)
        return self._position

    def detach(self) -> None:
        """Stop tracking edits; further writes through the marker fail."""

        if self._document is None:
            return
        self._document.release_marker(self)

    def _rebase(self, offset: int, length: int) -> None:
        if self._position > offset or (self._position == offset and self.advances):
            self._position += length

    def _orphan(self) -> None:
        self._document = None


__all__ = ["InsertionMarker"]
