"""Tests for thread creation and persistence."""

from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path

import pytest

from orgchat.conversation.entries import extract_entry
from orgchat.conversation.messages import RoleConfiguration
from orgchat.conversation.quoting import RegionQuotingPipeline, SourceContext
from orgchat.conversation.threads import ThreadStore, append_top_level_heading
from orgchat.documents.org_document import OrgDocument
from orgchat.errors import ConfigurationError, ErrorCode
from orgchat.services.settings import Settings

_FIXED = datetime(2024, 5, 6, 7, 8, 9, 123456)


def _store(directory: Path) -> ThreadStore:
    return ThreadStore(directory, prefix="chat-", clock=lambda: _FIXED)


def test_new_thread_writes_timestamped_file(tmp_path: Path, role_config: RoleConfiguration) -> None:
    created = _store(tmp_path / "threads").new_thread(role_config)

    assert created.path.name == "chat-2024-05-06T07-08-09.123456.org"
    assert created.path.read_text(encoding="utf-8") == "* User\n\n"
    assert created.cursor == len("* User\n")
    assert created.document.dirty is False


def test_new_thread_never_overwrites_existing_file(tmp_path: Path, role_config: RoleConfiguration) -> None:
    store = _store(tmp_path)

    first = store.new_thread(role_config)
    second = store.new_thread(role_config)

    assert first.path != second.path
    assert second.path.name == "chat-2024-05-06T07-08-09.123457.org"


def test_seeded_thread_uses_quoted_region_as_first_message(
    tmp_path: Path, role_config: RoleConfiguration
) -> None:
    seed = "#+begin_src python\nprint(1)\n#+end_src\n"

    created = _store(tmp_path).new_thread(role_config, seed=seed)

    document = created.document
    assert document.text == f"* User\n{seed}"
    assert extract_entry(document.last_node()) == ("User", "#+begin_src python\nprint(1)\n#+end_src")
    assert created.cursor == len(document)


def test_new_thread_rejects_file_as_storage_directory(tmp_path: Path, role_config: RoleConfiguration) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")

    with pytest.raises(ConfigurationError) as excinfo:
        _store(blocker).new_thread(role_config)

    assert excinfo.value.error_code == ErrorCode.INVALID_STORAGE_DIRECTORY


@pytest.mark.skipif(os.name == "nt" or os.geteuid() == 0, reason="permission bits not enforced")
def test_failed_creation_leaves_no_file(tmp_path: Path, role_config: RoleConfiguration) -> None:
    locked = tmp_path / "locked"
    locked.mkdir()
    locked.chmod(0o500)
    try:
        with pytest.raises(ConfigurationError):
            _store(locked).new_thread(role_config)
        assert list(locked.iterdir()) == []
    finally:
        locked.chmod(0o700)


def test_append_top_level_heading_appends_at_end(role_config: RoleConfiguration) -> None:
    document = OrgDocument("* User\nHi\n** AI\nHello\n")

    cursor = append_top_level_heading(document, role_config)

    assert document.text == "* User\nHi\n** AI\nHello\n* User\n\n"
    assert cursor == len(document) - 1
    assert [root.heading for root in document.roots()] == ["User", "User"]


def test_open_and_save_roundtrip(tmp_path: Path) -> None:
    path = tmp_path / "thread.org"
    path.write_bytes(b"* User\r\nHello\r\n")
    store = ThreadStore(tmp_path)

    document = store.open(path)
    document.insert(len(document), "* User\n")
    store.save(document)

    assert document.text == "* User\nHello\n* User\n"
    assert document.metadata.path == path
    assert path.read_bytes() == b"* User\r\nHello\r\n* User\r\n"
    assert document.dirty is False


def test_save_without_path_is_a_configuration_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        ThreadStore(tmp_path).save(OrgDocument("* User\n"))


def test_from_settings_reads_directory_prefix_and_keywords(tmp_path: Path) -> None:
    settings = Settings(storage_directory=str(tmp_path), file_prefix="talk-", todo_keywords=["WAIT"])
    store = ThreadStore.from_settings(settings)
    path = tmp_path / "x.org"
    path.write_text("* WAIT AI\nhello\n", encoding="utf-8")

    assert store.directory == tmp_path
    assert store.thread_path(_FIXED).name.startswith("talk-2024-05-06")
    assert store.open(path).last_node().heading == "AI"


def test_seed_with_heading_lines_stays_under_one_root(tmp_path: Path, role_config: RoleConfiguration) -> None:
    source = tmp_path / "notes.md"
    source.write_text("Shopping:\n* eggs\n* milk", encoding="utf-8")
    context = SourceContext.from_path(source)
    seed = RegionQuotingPipeline().quote(source.read_text(encoding="utf-8"), context)

    created = _store(tmp_path / "threads").new_thread(role_config, seed=seed)

    reopened = ThreadStore(tmp_path).open(created.path)
    assert [root.heading for root in reopened.roots()] == ["User"]
    assert reopened.text == "* User\nShopping:\n,* eggs\n,* milk\n"
    assert extract_entry(reopened.last_node()) == ("User", "Shopping:\n,* eggs\n,* milk")


def test_open_missing_thread_is_a_configuration_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        ThreadStore(tmp_path).open(tmp_path / "missing.org")

    assert excinfo.value.error_code == ErrorCode.FILE_UNREADABLE
    assert excinfo.value.details == {"path": str(tmp_path / "missing.org")}
