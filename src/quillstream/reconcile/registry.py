"""Registry of trigger regions with a generation in flight."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List

from ..triggers.scanner import RegionKey, Trigger

__all__ = [
    "ProcessingRegistry",
    "RegionBusyError",
    "RegistryFullError",
    "TriggerAffordance",
    "intersect_active",
]

LOGGER = logging.getLogger(__name__)


class RegionBusyError(RuntimeError):
    """Raised when a region is registered twice."""


class RegistryFullError(RuntimeError):
    """Raised when registering would exceed the configured capacity."""


@dataclass(slots=True, frozen=True)
class TriggerAffordance:
    """Trigger of the current document plus whether it is being generated."""

    trigger: Trigger
    busy: bool


class ProcessingRegistry:
    """Set of active region keys with an explicit capacity.

    Keys are snapshot-relative line ranges. Consumers must re-scan the
    current document and intersect (see :func:`intersect_active`) instead of
    trusting a key after the document changed.
    """

    def __init__(self, *, max_active: int = 1) -> None:
        if max_active < 1:
            raise ValueError("max_active must be at least 1")
        self._max_active = max_active
        self._active: set[RegionKey] = set()

    @property
    def max_active(self) -> int:
        return self._max_active

    def add(self, key: RegionKey | tuple[int, int]) -> None:
        region = RegionKey(*key)
        if region in self._active:
            raise RegionBusyError(f"Region {region.start_line}-{region.end_line} is already active")
        if len(self._active) >= self._max_active:
            raise RegistryFullError(
                f"Registry already tracks {len(self._active)} active region(s)"
            )
        self._active.add(region)
        LOGGER.debug("Region %s-%s marked active", region.start_line, region.end_line)

    def remove(self, key: RegionKey | tuple[int, int]) -> None:
        region = RegionKey(*key)
        if region in self._active:
            self._active.discard(region)
            LOGGER.debug("Region %s-%s released", region.start_line, region.end_line)

    def is_active(self, key: RegionKey | tuple[int, int]) -> bool:
        return RegionKey(*key) in self._active

    def active_keys(self) -> frozenset[RegionKey]:
        return frozenset(self._active)

    def overlaps(self, start_line: int, end_line: int) -> bool:
        """Return ``True`` when any active region shares a line with the range."""

        return any(
            region.start_line <= end_line and start_line <= region.end_line
            for region in self._active
        )

    def clear(self) -> None:
        self._active.clear()

    def __len__(self) -> int:
        return len(self._active)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple) or len(key) != 2:
            return False
        return RegionKey(*key) in self._active


def intersect_active(
    triggers: Iterable[Trigger], registry: ProcessingRegistry
) -> List[TriggerAffordance]:
    """Pair freshly scanned triggers with the registry's busy state."""

    active = registry.active_keys()
    return [TriggerAffordance(trigger=trigger, busy=trigger.key in active) for trigger in triggers]
