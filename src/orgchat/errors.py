"""Error types for document, transport and configuration failures.

Each error carries a stable code for programmatic handling, a message for
people and optional details. The CLI prints ``[code] message``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class ErrorCode:
    """Stable identifiers carried by :class:`OrgChatError`."""

    # Document structure
    NO_CURRENT_NODE = "no_current_node"
    STALE_NODE = "stale_node"
    OFFSET_OUT_OF_BOUNDS = "offset_out_of_bounds"
    MARKER_DETACHED = "marker_detached"

    # Transport
    TRANSPORT_FAILED = "transport_failed"
    TRANSPORT_UNAVAILABLE = "transport_unavailable"

    # Configuration
    INVALID_STORAGE_DIRECTORY = "invalid_storage_directory"
    UNKNOWN_REGION_FILTER = "unknown_region_filter"
    INVALID_SETTING = "invalid_setting"
    FILE_UNREADABLE = "file_unreadable"


@dataclass
class OrgChatError(Exception):
    """Base class for every error raised by orgchat.

    ``suggestion`` is optional guidance shown after the message.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = ""

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "kind": type(self).__name__,
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            payload["details"] = dict(self.details)
        if self.suggestion:
            payload["suggestion"] = self.suggestion
        return payload


@dataclass
class StructuralError(OrgChatError):
    """Traversal or node creation attempted outside a valid tree context."""

    error_code: str = ErrorCode.NO_CURRENT_NODE
    message: str = "No heading encloses the current position"
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = "Move the cursor below a heading and retry"


@dataclass
class TransportError(OrgChatError):
    """Failure reported while sending a conversation or streaming its reply."""

    error_code: str = ErrorCode.TRANSPORT_FAILED
    message: str = "The transport failed to deliver a response"
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = ""


@dataclass
class ConfigurationError(OrgChatError):
    """Missing or malformed configuration detected before an operation runs."""

    error_code: str = ErrorCode.INVALID_SETTING
    message: str = "Configuration is invalid"
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = "Check the settings file or ORGCHAT_* environment variables"


__all__ = ["ConfigurationError", "ErrorCode", "OrgChatError", "StructuralError", "TransportError"]
