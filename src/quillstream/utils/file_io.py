"""Reading and writing the Markdown files quillstream edits in place."""

from __future__ import annotations

import hashlib
import os
import tempfile
from pathlib import Path

__all__ = ["compute_text_digest", "read_text", "write_text"]


def read_text(path: Path | str) -> str:
    """Return the file decoded as UTF-8 with ``\\n`` line endings.

    A leading byte order mark is dropped. Raises ``UnicodeDecodeError`` for
    files that are not UTF-8.
    """

    return _to_lf(Path(path).read_bytes().decode("utf-8-sig"))


def write_text(path: Path | str, content: str) -> Path:
    """Replace the file with ``content`` in one step.

    The text goes to a temporary sibling first and is renamed over the
    target, so a reader never sees a half-written document.
    """

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    descriptor, tmp_name = tempfile.mkstemp(
        dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(descriptor, "w", encoding="utf-8", newline="") as handle:
            handle.write(_to_lf(content))
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return target


def compute_text_digest(text: str) -> str:
    """Return a SHA-256 digest for the provided text."""

    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _to_lf(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")
