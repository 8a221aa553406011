"""Create thread files and append top-level turns."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Sequence

from ..documents.org_document import DEFAULT_TODO_KEYWORDS, OrgDocument, escape_heading_lines
from ..errors import ConfigurationError, ErrorCode
from ..services.settings import validate_storage_directory
from ..utils.file_io import load_text, write_text
from .messages import RoleConfiguration

if TYPE_CHECKING:
    from ..services.settings import Settings

LOGGER = logging.getLogger(__name__)

DEFAULT_FILE_PREFIX = "chat-"
THREAD_SUFFIX = ".org"


@dataclass(slots=True)
class NewThread:
    """A freshly persisted thread and the offset where input is expected."""

    path: Path
    document: OrgDocument
    cursor: int


def append_top_level_heading(document: OrgDocument, config: RoleConfiguration) -> int:
    """Append ``* <user name>`` plus a blank line; return the blank line's offset."""

    return document.append_heading(1, config.user_name)


class ThreadStore:
    """Timestamped thread files inside a storage directory."""

    def __init__(
        self,
        directory: Path | str,
        *,
        prefix: str = DEFAULT_FILE_PREFIX,
        todo_keywords: Sequence[str] = DEFAULT_TODO_KEYWORDS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._directory = Path(directory).expanduser()
        self._prefix = prefix
        self._todo_keywords = tuple(todo_keywords)
        self._clock = clock or datetime.now

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ThreadStore":
        return cls(
            settings.storage_directory,
            prefix=settings.file_prefix,
            todo_keywords=settings.todo_keywords,
        )

    @property
    def directory(self) -> Path:
        return self._directory

    def thread_path(self, instant: datetime) -> Path:
        return self._directory / f"{self._prefix}{instant:%Y-%m-%dT%H-%M-%S.%f}{THREAD_SUFFIX}"

    def new_thread(self, config: RoleConfiguration, *, seed: str | None = None) -> NewThread:
        """Write a new thread file whose first node is a user heading.

        ``seed`` (already quoted) becomes the body of that heading. Seed lines
        that look like headings are comma-escaped so the thread keeps a single
        root. The file is written atomically, so a failure leaves nothing behind.
        """

        validate_storage_directory(self._directory, create=True)
        instant = self._clock()
        path = self.thread_path(instant)
        while path.exists():
            instant += timedelta(microseconds=1)
            path = self.thread_path(instant)

        document = OrgDocument.from_text("", path=path, todo_keywords=self._todo_keywords)
        if seed is None:
            cursor = append_top_level_heading(document, config)
        else:
            document.insert(0, f"* {config.user_name}\n{escape_heading_lines(seed)}")
            cursor = len(document)
        self.save(document, path)
        LOGGER.info("Created thread %s", path)
        return NewThread(path=path, document=document, cursor=cursor)

    def open(self, path: Path | str) -> OrgDocument:
        """Load a thread, remembering its encoding and line endings for :meth:`save`."""

        target = Path(path).expanduser()
        try:
            loaded = load_text(target)
        except OSError as exc:
            raise ConfigurationError(
                error_code=ErrorCode.FILE_UNREADABLE,
                message=f"Unable to read thread {target}: {exc.strerror or exc}",
                details={"path": str(target)},
                suggestion="Check the thread path, or create one with 'orgchat new'.",
            ) from exc
        return OrgDocument.from_text(
            loaded.text,
            path=target,
            encoding=loaded.encoding,
            newline=loaded.newline,
            todo_keywords=self._todo_keywords,
        )

    def save(self, document: OrgDocument, path: Path | str | None = None) -> Path:
        target = Path(path) if path is not None else document.metadata.path
        if target is None:
            raise ConfigurationError(
                error_code=ErrorCode.INVALID_SETTING,
                message="Document has no path to save to",
            )
        try:
            write_text(
                target,
                document.text,
                encoding=document.metadata.encoding,
                newline=document.metadata.newline,
            )
        except OSError as exc:
            raise ConfigurationError(
                error_code=ErrorCode.INVALID_STORAGE_DIRECTORY,
                message=f"Unable to write {target}: {exc}",
                details={"path": str(target)},
            ) from exc
        document.metadata.path = target
        document.dirty = False
        return target


__all__ = ["DEFAULT_FILE_PREFIX", "NewThread", "ThreadStore", "append_top_level_heading"]
