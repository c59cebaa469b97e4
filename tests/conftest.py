"""Shared pytest fixtures."""

from __future__ import annotations

import os

import pytest


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory) -> None:
    """Keep developer settings and log files out of the test run."""

    for name in list(os.environ):
        if name.startswith("QUILLSTREAM_"):
            monkeypatch.delenv(name)
    monkeypatch.setenv("QUILLSTREAM_LOG_DIR", str(tmp_path_factory.mktemp("logs")))
