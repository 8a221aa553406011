"""Tests for entry extraction and ancestor walking."""

from __future__ import annotations

import pytest

from orgchat.conversation.entries import collect_ancestors, extract_entry, strip_metadata_block
from orgchat.documents.org_document import OrgDocument, parse_outline
from orgchat.errors import StructuralError


def test_extract_entry_drops_heading_line_remainder() -> None:
    node = parse_outline("* User\nHello\n").nodes[0]

    assert extract_entry(node) == ("User", "Hello")


def test_extract_entry_removes_properties_drawer_and_one_leading_line() -> None:
    text = (
        "* TODO AI :chat:\n"
        "  :PROPERTIES:\n"
        "  :CREATED: [2024-01-01]\n"
        "  :END:\n"
        "First line\n"
        "Second line\n"
    )
    node = parse_outline(text).nodes[0]

    assert extract_entry(node) == ("AI", "First line\nSecond line")


def test_extract_entry_stops_at_first_child() -> None:
    node = parse_outline("* User\nparent text\n** AI\nchild text\n").nodes[0]

    assert extract_entry(node)[1] == "parent text"


def test_extract_entry_preserves_blank_lines_inside_body() -> None:
    node = parse_outline("* User\n\nspaced\n\n* User\n").nodes[0]

    assert extract_entry(node)[1] == "\nspaced\n"


def test_strip_metadata_block_uses_outermost_end_marker() -> None:
    lines = ["", ":PROPERTIES:", ":A: 1", ":END:", ":B: 2", ":END:", "body"]

    assert strip_metadata_block(lines) == ["", "body"]


def test_strip_metadata_block_without_start_is_unchanged() -> None:
    lines = ["", "body", ":END:"]

    assert strip_metadata_block(lines) == lines


def test_strip_metadata_block_without_end_is_unchanged() -> None:
    lines = ["", ":PROPERTIES:", ":A: 1", "body"]

    assert strip_metadata_block(lines) == lines


def test_metadata_stripping_is_idempotent() -> None:
    lines = ["", ":PROPERTIES:", ":ID: x", ":END:", "text"]

    once = strip_metadata_block(lines)

    assert strip_metadata_block(once) == once


def test_collect_ancestors_is_root_first(branching_document: OrgDocument) -> None:
    leaf = branching_document.outline().nodes[2]

    chain = collect_ancestors(leaf)

    assert chain == [
        ("User", "What is a monad?"),
        ("AI", "A monoid in the category of endofunctors."),
        ("User", "Say that simpler."),
    ]


def test_collect_ancestors_length_matches_depth(branching_document: OrgDocument) -> None:
    for node in branching_document.iter_nodes():
        chain = collect_ancestors(node)
        assert len(chain) == node.depth
        assert chain[-1] == extract_entry(node)


def test_collect_ancestors_does_not_touch_document(branching_document: OrgDocument) -> None:
    version = branching_document.version_id
    text = branching_document.text

    collect_ancestors(branching_document.last_node())

    assert branching_document.version_id == version
    assert branching_document.text == text


def test_collect_ancestors_without_node_raises() -> None:
    with pytest.raises(StructuralError):
        collect_ancestors(None)
