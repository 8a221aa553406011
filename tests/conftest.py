"""Shared pytest fixtures."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from orgchat.conversation.messages import RoleConfiguration
from orgchat.documents.org_document import OrgDocument


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in list(os.environ):
        if name.startswith("ORGCHAT_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ORGCHAT_LOG_DIR", str(tmp_path / "logs"))


@pytest.fixture
def role_config() -> RoleConfiguration:
    return RoleConfiguration(user_name="User", ai_name="AI", prompt_preamble="Be brief.")


@pytest.fixture
def branching_document() -> OrgDocument:
    return OrgDocument(
        "#+TITLE: Notes\n"
        "* User\n"
        "What is a monad?\n"
        "** AI\n"
        "A monoid in the category of endofunctors.\n"
        "*** User\n"
        "Say that simpler.\n"
        "** AI\n"
        "A burrito.\n"
        "* User :draft:\n"
        "Unrelated question\n"
    )
