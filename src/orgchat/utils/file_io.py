"""Reading and writing thread files and quoted sources."""

from __future__ import annotations

import codecs
import contextlib
import locale
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

__all__ = ["LoadedText", "detect_encoding", "load_text", "normalize_newlines", "read_text", "write_text"]

_BOM_ENCODINGS: tuple[tuple[bytes, str], ...] = (
    (codecs.BOM_UTF32_LE, "utf-32"),
    (codecs.BOM_UTF32_BE, "utf-32"),
    (codecs.BOM_UTF8, "utf-8-sig"),
    (codecs.BOM_UTF16_LE, "utf-16"),
    (codecs.BOM_UTF16_BE, "utf-16"),
)
_NEWLINES = ("\n", "\r\n", "\r")


@dataclass(slots=True, frozen=True)
class LoadedText:
    """Decoded text with ``\\n`` line endings plus the conventions found on disk.

    Writing ``text`` back with ``encoding`` and ``newline`` reproduces the
    file's original byte layout for unchanged content.
    """

    text: str
    encoding: str = "utf-8"
    newline: str = "\n"


def detect_encoding(raw: bytes) -> str:
    """Return a codec able to decode ``raw``, honouring any byte order mark."""

    # UTF-32-LE must be checked first; its BOM starts with the UTF-16-LE one.
    for bom, encoding in _BOM_ENCODINGS:
        if raw.startswith(bom):
            return encoding
    candidates = dict.fromkeys(("utf-8", locale.getpreferredencoding(False) or "utf-8", "latin-1"))
    for candidate in candidates:
        try:
            raw.decode(candidate)
        except UnicodeDecodeError:
            continue
        return candidate
    return "utf-8"


def normalize_newlines(text: str) -> str:
    if "\r" not in text:
        return text
    return text.replace("\r\n", "\n").replace("\r", "\n")


def load_text(path: Path | str) -> LoadedText:
    raw = Path(path).read_bytes()
    encoding = detect_encoding(raw)
    decoded = raw.decode(encoding)
    if decoded.startswith("\ufeff"):
        decoded = decoded[1:]
    return LoadedText(text=normalize_newlines(decoded), encoding=encoding, newline=_dominant_newline(decoded))


def read_text(path: Path | str) -> str:
    """Return the decoded contents of ``path`` with ``\\n`` line endings."""

    return load_text(path).text


def write_text(
    path: Path | str,
    content: str,
    *,
    encoding: str = "utf-8",
    newline: str = "\n",
) -> Path:
    """Atomically replace ``path`` with ``content``.

    The text is written to a temporary sibling first, so a failure leaves
    any previous file untouched and never a partial one.
    """

    if newline not in _NEWLINES:
        raise ValueError(f"Unsupported newline sequence: {newline!r}")
    target = Path(path)
    body = normalize_newlines(content)
    if newline != "\n":
        body = body.replace("\n", newline)

    descriptor, tmp_name = tempfile.mkstemp(dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(descriptor, "w", encoding=encoding, newline="") as handle:
            handle.write(body)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, target)
    finally:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
    return target


def _dominant_newline(text: str) -> str:
    crlf = text.count("\r\n")
    counts = {"\r\n": crlf, "\n": text.count("\n") - crlf, "\r": text.count("\r") - crlf}
    best = max(counts, key=counts.__getitem__)
    return best if counts[best] else "\n"
