"""Editor-facing document model and line splicing."""

from .document_model import (
    DocumentLockedError,
    DocumentOwner,
    DocumentState,
    FileDocument,
    LockableDocument,
)
from .splice import SpliceError, SpliceResult, join_lines, splice_lines, splice_text, split_lines

__all__ = [
    "DocumentLockedError",
    "DocumentOwner",
    "DocumentState",
    "FileDocument",
    "LockableDocument",
    "SpliceError",
    "SpliceResult",
    "join_lines",
    "splice_lines",
    "splice_text",
    "split_lines",
]
