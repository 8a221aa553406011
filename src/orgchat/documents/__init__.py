"""Org document model: heading tree snapshots and insertion markers."""

from .markers import InsertionMarker
from .org_document import DocumentMetadata, DocumentNode, OrgDocument, Outline, parse_outline

__all__ = [
    "DocumentMetadata",
    "DocumentNode",
    "InsertionMarker",
    "OrgDocument",
    "Outline",
    "parse_outline",
]
