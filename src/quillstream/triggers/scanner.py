"""Detection of fenced AI trigger blocks inside a plain-text document."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, NamedTuple

__all__ = [
    "CLOSING_FENCE",
    "FENCE",
    "RegionKey",
    "Trigger",
    "TriggerKind",
    "UpdateTopic",
    "find_trigger",
    "scan",
    "split_update_topic",
    "trigger_at",
]

FENCE = "```"
CLOSING_FENCE = FENCE


class TriggerKind(str, Enum):
    """Kinds of generation a fenced block can request."""

    TEMPLATE = "ai-template"
    WRITE = "ai-write"
    UPDATE = "ai-update"

    @property
    def marker(self) -> str:
        """Return the opening fence line for this kind."""

        return f"{FENCE}{self.value}"


_OPENING_MARKERS = {kind.marker: kind for kind in TriggerKind}


class RegionKey(NamedTuple):
    """Inclusive line range identifying a trigger inside one document snapshot."""

    start_line: int
    end_line: int


@dataclass(slots=True, frozen=True)
class Trigger:
    """A closed fenced block detected by :func:`scan`.

    Line indices are 0-based and only meaningful against the exact text the
    trigger was scanned from.
    """

    kind: TriggerKind
    topic: str
    start_line: int
    end_line: int

    @property
    def key(self) -> RegionKey:
        return RegionKey(self.start_line, self.end_line)

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1

    def contains(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line


@dataclass(slots=True, frozen=True)
class UpdateTopic:
    """Topic of an ``ai-update`` block split into its two parts."""

    instruction: str
    prior_content: str


def scan(text: str) -> List[Trigger]:
    """Return every closed trigger block in ``text`` in document order.

    Nested opening markers are treated as content and unclosed blocks are
    ignored; the function never raises.
    """

    triggers: List[Trigger] = []
    in_block = False
    kind: TriggerKind | None = None
    start_line = 0
    inner: List[str] = []

    for index, line in enumerate(text.split("\n")):
        stripped = line.strip()
        if not in_block:
            opened = _OPENING_MARKERS.get(stripped)
            if opened is not None:
                in_block = True
                kind = opened
                start_line = index
                inner = []
            continue
        if stripped == CLOSING_FENCE:
            assert kind is not None
            triggers.append(
                Trigger(
                    kind=kind,
                    topic="\n".join(inner).strip(),
                    start_line=start_line,
                    end_line=index,
                )
            )
            in_block = False
            kind = None
            inner = []
            continue
        inner.append(line)

    return triggers


def split_update_topic(topic: str) -> UpdateTopic:
    """Split an update topic on its first blank line.

    The text before the blank line is the revision instruction and the rest
    is the content to revise.
    """

    lines = topic.split("\n")
    for index, line in enumerate(lines):
        if not line.strip():
            instruction = "\n".join(lines[:index]).strip()
            prior = "\n".join(lines[index + 1 :]).strip()
            return UpdateTopic(instruction=instruction, prior_content=prior)
    return UpdateTopic(instruction=topic.strip(), prior_content="")


def trigger_at(text: str, line: int) -> Trigger | None:
    """Re-scan ``text`` and return the trigger whose range covers ``line``."""

    for trigger in scan(text):
        if trigger.contains(line):
            return trigger
    return None


def find_trigger(text: str, key: RegionKey | tuple[int, int]) -> Trigger | None:
    """Re-resolve ``key`` against ``text``; ``None`` when the range is stale."""

    wanted = RegionKey(*key)
    for trigger in scan(text):
        if trigger.key == wanted:
            return trigger
    return None
