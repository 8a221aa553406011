"""Tests for logging bootstrap."""

from __future__ import annotations

import io
import logging
import logging.handlers
from pathlib import Path

import pytest

from orgchat.utils import logging as logging_utils


@pytest.fixture(autouse=True)
def _reset_handlers():
    root = logging.getLogger()
    level = root.level
    yield
    logging_utils.reset_logging()
    root.setLevel(level)


def _flush() -> None:
    for handler in logging.getLogger().handlers:
        handler.flush()


def test_setup_logging_writes_rotating_file(tmp_path: Path) -> None:
    log_path = logging_utils.setup_logging(logging.DEBUG, log_dir=tmp_path, console=False)

    logging.getLogger("orgchat.test").debug("hello from test")
    _flush()

    assert log_path == tmp_path / "orgchat.log"
    assert logging_utils.get_log_path() == log_path
    assert "hello from test" in log_path.read_text(encoding="utf-8")
    assert any(isinstance(h, logging.handlers.RotatingFileHandler) for h in logging.getLogger().handlers)
    assert logging.getLogger("httpx").level == logging.WARNING


def test_console_only_shows_warnings(tmp_path: Path) -> None:
    stream = io.StringIO()
    logging_utils.setup_logging(logging.DEBUG, log_dir=tmp_path, stream=stream)

    logging.getLogger("orgchat.test").info("quiet")
    logging.getLogger("orgchat.test").warning("loud")
    _flush()

    assert "loud" in stream.getvalue()
    assert "quiet" not in stream.getvalue()


def test_repeat_calls_keep_handlers_unless_forced(tmp_path: Path) -> None:
    first = logging_utils.setup_logging(log_dir=tmp_path / "one", console=False)
    again = logging_utils.setup_logging(log_dir=tmp_path / "two", console=False)
    forced = logging_utils.setup_logging(log_dir=tmp_path / "two", console=False, force=True)

    assert again == first
    assert forced == tmp_path / "two" / "orgchat.log"
    rotating = [h for h in logging.getLogger().handlers if isinstance(h, logging.handlers.RotatingFileHandler)]
    assert len(rotating) == 1


def test_environment_directory_is_used(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ORGCHAT_LOG_DIR", str(tmp_path / "env-logs"))

    log_path = logging_utils.setup_logging(console=False)

    assert log_path == tmp_path / "env-logs" / "orgchat.log"
    assert log_path.parent.is_dir()


def test_reset_logging_forgets_path(tmp_path: Path) -> None:
    logging_utils.setup_logging(log_dir=tmp_path, console=False)

    logging_utils.reset_logging()

    assert logging_utils.get_log_path() is None
