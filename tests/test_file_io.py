"""Tests for reading and writing document files."""

from __future__ import annotations

from pathlib import Path

import pytest

from quillstream.utils import file_io


def test_read_text_drops_bom_and_normalizes_newlines(tmp_path: Path) -> None:
    path = tmp_path / "notes.md"
    path.write_bytes(b"\xef\xbb\xbf# Notes\r\n```ai-write\r\nTopic\r```\n")

    assert file_io.read_text(path) == "# Notes\n```ai-write\nTopic\n```\n"


def test_read_text_rejects_non_utf8(tmp_path: Path) -> None:
    path = tmp_path / "latin.md"
    path.write_bytes("café".encode("latin-1"))

    with pytest.raises(UnicodeDecodeError):
        file_io.read_text(path)


def test_write_text_replaces_file_without_leftovers(tmp_path: Path) -> None:
    path = tmp_path / "docs" / "plan.md"

    assert file_io.write_text(path, "first\r\n") == path
    file_io.write_text(path, "second\nversion\n")

    assert path.read_bytes() == b"second\nversion\n"
    assert [entry.name for entry in path.parent.iterdir()] == ["plan.md"]


def test_compute_text_digest_is_stable() -> None:
    assert file_io.compute_text_digest("abc") == file_io.compute_text_digest("abc")
    assert file_io.compute_text_digest("abc") != file_io.compute_text_digest("abd")
