"""Document owners the reconciliation core reads from and writes to."""

from __future__ import annotations

import hashlib
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, runtime_checkable

from ..utils import file_io

__all__ = [
    "DocumentLockedError",
    "DocumentOwner",
    "DocumentState",
    "FileDocument",
    "LockableDocument",
]

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


def _hash_text(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


class DocumentLockedError(RuntimeError):
    """Raised when a user edit targets a document locked for generation."""


@runtime_checkable
class DocumentOwner(Protocol):
    """Editor-side collaborator that owns the live document text."""

    def get_current_text(self) -> str:
        ...

    def replace_all_text(self, new_text: str) -> None:
        ...


@runtime_checkable
class LockableDocument(Protocol):
    """Owner that can refuse user edits while a generation is running."""

    def set_readonly(self, readonly: bool) -> None:
        ...

    def is_readonly(self) -> bool:
        ...


@dataclass(slots=True)
class DocumentState:
    """In-memory document owner with version tracking."""

    text: str = ""
    document_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    version_id: int = 1
    content_hash: str = field(default_factory=str)
    readonly: bool = False
    dirty: bool = False
    updated_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if not self.content_hash:
            self.content_hash = _hash_text(self.text)

    def get_current_text(self) -> str:
        return self.text

    def replace_all_text(self, new_text: str) -> None:
        """Replace the whole document; used by the reconciliation path."""

        self.update_text(new_text)

    def apply_user_edit(self, new_text: str) -> None:
        """Replace the document on behalf of the user, honoring the lock."""

        if self.readonly:
            raise DocumentLockedError("Document is locked while generation is in progress")
        self.update_text(new_text)

    def update_text(self, new_text: str) -> None:
        """Update the document text and mark it dirty."""

        if new_text == self.text:
            return
        self.text = new_text
        self.dirty = True
        self.updated_at = _utcnow()
        self.version_id += 1
        self.content_hash = _hash_text(new_text)

    def set_readonly(self, readonly: bool) -> None:
        self.readonly = readonly

    def is_readonly(self) -> bool:
        return self.readonly

    def version_signature(self) -> str:
        return f"{self.document_id}:{self.version_id}:{self.content_hash}"


class FileDocument:
    """Document owner persisting every replacement to a file on disk."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._state = DocumentState(text=file_io.read_text(self._path))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def state(self) -> DocumentState:
        return self._state

    def get_current_text(self) -> str:
        return self._state.text

    def replace_all_text(self, new_text: str) -> None:
        self._state.replace_all_text(new_text)
        file_io.write_text(self._path, new_text)
        LOGGER.debug(
            "Wrote %s (version=%s, %d chars)", self._path, self._state.version_id, len(new_text)
        )

    def set_readonly(self, readonly: bool) -> None:
        self._state.set_readonly(readonly)

    def is_readonly(self) -> bool:
        return self._state.is_readonly()
