"""Context sources prepended to every generation prompt."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Protocol, Sequence

from ..utils import file_io

__all__ = ["ContextFile", "ContextProvider", "StaticContext", "WorkspaceContext"]

LOGGER = logging.getLogger(__name__)

_FILE_SEPARATOR = "\n\n---\n\n"


class ContextProvider(Protocol):
    """Supplies the other in-scope content as one opaque string."""

    def collect(self) -> str:
        ...


@dataclass(slots=True)
class ContextFile:
    name: str
    content: str
    included: bool = True

    def render(self) -> str:
        return f"## {self.name}\n\n{self.content}"


class StaticContext:
    """Context provider returning a fixed string."""

    def __init__(self, text: str = "") -> None:
        self._text = text

    def collect(self) -> str:
        return self._text


class WorkspaceContext:
    """Ordered set of named files, rendered in order when included."""

    def __init__(self, files: Iterable[ContextFile] = ()) -> None:
        self._files: List[ContextFile] = list(files)

    @classmethod
    def from_paths(cls, paths: Sequence[Path | str]) -> "WorkspaceContext":
        files: List[ContextFile] = []
        for raw in paths:
            path = Path(raw)
            try:
                content = file_io.read_text(path)
            except (OSError, UnicodeDecodeError) as exc:
                LOGGER.warning("Skipping context file %s: %s", path, exc)
                continue
            files.append(ContextFile(name=path.stem, content=content))
        return cls(files)

    @property
    def files(self) -> tuple[ContextFile, ...]:
        return tuple(self._files)

    def add(self, name: str, content: str, *, included: bool = True) -> ContextFile:
        entry = ContextFile(name=name, content=content, included=included)
        self._files.append(entry)
        return entry

    def set_included(self, name: str, included: bool) -> None:
        for entry in self._files:
            if entry.name == name:
                entry.included = included
                return
        raise KeyError(name)

    def update(self, name: str, content: str) -> None:
        for entry in self._files:
            if entry.name == name:
                entry.content = content
                return
        raise KeyError(name)

    def collect(self) -> str:
        return _FILE_SEPARATOR.join(entry.render() for entry in self._files if entry.included)
