"""Open the AI and next-user turn under a node and hand the conversation to a transport."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..documents.markers import InsertionMarker
from ..documents.org_document import DocumentNode, OrgDocument
from ..errors import StructuralError
from .entries import collect_ancestors
from .messages import Message, RoleConfiguration, build_messages

if TYPE_CHECKING:
    from ..ai.transport import Transport

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ResponseHandle:
    """Outcome of :meth:`ThreadResponder.respond`.

    ``marker`` sits at the start of the AI node's body and moves forward as
    the transport writes. ``result`` is whatever ``Transport.send`` returned.
    """

    marker: InsertionMarker
    messages: list[Message]
    ai_heading_offset: int
    user_heading_offset: int
    result: Any = None
    _outcome: Any = field(default=None, repr=False)
    _finished: bool = field(default=False, repr=False)

    @property
    def finished(self) -> bool:
        return self._finished

    async def wait(self) -> Any:
        """Await the transport's result when awaitable, then release the marker.

        Completion is never required by the responder itself; this is an
        opt-in for callers that need to act once streaming stops.
        """

        if self._finished:
            return self._outcome
        try:
            outcome = self.result
            if inspect.isawaitable(outcome):
                outcome = await outcome
            self._outcome = outcome
            return outcome
        finally:
            self._finished = True
            self.marker.detach()


class ThreadResponder:
    """Generates a reply at a node of an :class:`OrgDocument`."""

    def respond(
        self,
        document: OrgDocument,
        node: DocumentNode | None,
        config: RoleConfiguration,
        transport: "Transport",
    ) -> ResponseHandle:
        """Append ``AI`` and ``User`` children to ``node`` and start the transport.

        Both nodes exist in the document before ``transport.send`` is
        called. Structural problems abort before anything is sent; transport
        failures propagate and leave the two nodes in place.
        """

        if node is None:
            raise StructuralError(message="Cannot respond without a current node")
        document.ensure_current(node)
        messages = build_messages(collect_ancestors(node), config)
        marker, ai_offset, user_offset = self._open_turn(document, node, config)
        LOGGER.info(
            "Requesting reply for %r with %s message(s); marker at %s",
            node.heading,
            len(messages),
            marker.position,
        )
        result = transport.send(messages, marker)
        return ResponseHandle(
            marker=marker,
            messages=messages,
            ai_heading_offset=ai_offset,
            user_heading_offset=user_offset,
            result=result,
        )

    def respond_at(
        self,
        document: OrgDocument,
        offset: int,
        config: RoleConfiguration,
        transport: "Transport",
    ) -> ResponseHandle:
        """Respond at the node enclosing the cursor ``offset``."""

        return self.respond(document, document.node_at(offset), config, transport)

    def _open_turn(
        self, document: OrgDocument, node: DocumentNode, config: RoleConfiguration
    ) -> tuple[InsertionMarker, int, int]:
        stars = "*" * (node.level + 1)
        insert_at = node.subtree_range.end
        prefix = "" if insert_at == 0 or document.text[insert_at - 1] == "\n" else "\n"
        ai_heading = f"{prefix}{stars} {config.ai_name}\n"
        document.insert(insert_at, f"{ai_heading}\n")

        body_start = insert_at + len(ai_heading)
        marker = document.create_marker(body_start)
        # Strictly after the marker, so the marker stays above the user node.
        user_at = body_start + 1
        document.insert(user_at, f"{stars} {config.user_name}\n")
        return marker, insert_at + len(prefix), user_at


__all__ = ["ResponseHandle", "ThreadResponder"]
