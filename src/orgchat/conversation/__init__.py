"""Conversation layer: entries, messages, responder, region quoting and threads."""

from .entries import collect_ancestors, extract_entry
from .messages import Message, RoleConfiguration, build_messages
from .quoting import RegionQuotingPipeline, SourceContext, SourceKind
from .responder import ResponseHandle, ThreadResponder
from .threads import NewThread, ThreadStore, append_top_level_heading

__all__ = [
    "Message",
    "NewThread",
    "RegionQuotingPipeline",
    "ResponseHandle",
    "RoleConfiguration",
    "SourceContext",
    "SourceKind",
    "ThreadResponder",
    "ThreadStore",
    "append_top_level_heading",
    "build_messages",
    "collect_ancestors",
    "extract_entry",
]
