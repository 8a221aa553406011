"""Role-tagged conversation messages assembled from an ancestor chain."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, Sequence

from .entries import Entry

if TYPE_CHECKING:
    from ..services.settings import Settings

LOGGER = logging.getLogger(__name__)

Role = Literal["system", "user", "assistant"]

DEFAULT_USER_NAME = "User"
DEFAULT_AI_NAME = "AI"
DEFAULT_PROMPT_PREAMBLE = (
    "You are a helpful assistant inside a plain-text outline. "
    "Answer the latest user message, using the earlier turns as context."
)


@dataclass(slots=True, frozen=True)
class Message:
    """Single chat turn; list order is conversation chronology."""

    role: Role
    content: str

    def to_payload(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content}


@dataclass(slots=True, frozen=True)
class RoleConfiguration:
    """Names and preamble that decide how headings map onto chat roles."""

    user_name: str = DEFAULT_USER_NAME
    ai_name: str = DEFAULT_AI_NAME
    prompt_preamble: str = DEFAULT_PROMPT_PREAMBLE

    @classmethod
    def from_settings(cls, settings: "Settings") -> "RoleConfiguration":
        return cls(
            user_name=settings.user_name,
            ai_name=settings.ai_name,
            prompt_preamble=settings.prompt_preamble,
        )


def role_for_heading(heading: str, config: RoleConfiguration) -> Role:
    """Return ``"assistant"`` only for an exact match with the AI name."""

    return "assistant" if heading == config.ai_name else "user"


def build_messages(chain: Sequence[Entry], config: RoleConfiguration) -> list[Message]:
    """Map an ancestor chain onto ``[system, turn, turn, ...]`` messages."""

    messages = [Message(role="system", content=config.prompt_preamble)]
    messages.extend(Message(role=role_for_heading(heading, config), content=body) for heading, body in chain)
    LOGGER.debug("Assembled %s message(s) from %s entries", len(messages), len(chain))
    return messages


__all__ = [
    "DEFAULT_AI_NAME",
    "DEFAULT_PROMPT_PREAMBLE",
    "DEFAULT_USER_NAME",
    "Message",
    "Role",
    "RoleConfiguration",
    "build_messages",
    "role_for_heading",
]
