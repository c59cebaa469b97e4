"""Editor-facing controller: debounced scanning and trigger activation."""

from __future__ import annotations

import asyncio
import logging
from typing import List

from ..editor.document_model import DocumentOwner
from ..events import EventBus, TriggersScanned
from ..triggers.scanner import Trigger, scan, trigger_at
from ..utils.file_io import compute_text_digest
from .driver import ReconciliationDriver, ReconciliationResult
from .registry import TriggerAffordance, intersect_active

__all__ = ["TriggerController"]

LOGGER = logging.getLogger(__name__)


class TriggerController:
    """Keeps the trigger list current and starts sessions on request.

    Triggers are never cached across an edit: every activation re-scans the
    live document and resolves the line again.
    """

    def __init__(
        self,
        owner: DocumentOwner,
        driver: ReconciliationDriver,
        *,
        debounce_seconds: float = 0.3,
        event_bus: EventBus | None = None,
        max_rounds: int = 50,
    ) -> None:
        self._owner = owner
        self._driver = driver
        self._debounce = max(0.0, debounce_seconds)
        self._bus = event_bus
        self._max_rounds = max(1, max_rounds)
        self._triggers: tuple[Trigger, ...] = ()
        self._pending: asyncio.TimerHandle | None = None

    @property
    def triggers(self) -> tuple[Trigger, ...]:
        """Triggers from the most recent scan."""

        return self._triggers

    @property
    def driver(self) -> ReconciliationDriver:
        return self._driver

    def refresh(self) -> tuple[Trigger, ...]:
        self._cancel_pending()
        text = self._owner.get_current_text()
        self._triggers = tuple(scan(text))
        if self._bus is not None:
            self._bus.publish(TriggersScanned(triggers=self._triggers, version=compute_text_digest(text)))
        return self._triggers

    def notify_changed(self) -> None:
        """Schedule a rescan after the debounce window; restarts a pending one."""

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.refresh()
            return
        self._cancel_pending()
        self._pending = loop.call_later(self._debounce, self._debounced_refresh)

    def affordances(self) -> List[TriggerAffordance]:
        """Triggers of the live document paired with their busy state."""

        return intersect_active(scan(self._owner.get_current_text()), self._driver.registry)

    async def activate_line(self, line: int) -> ReconciliationResult | None:
        """Run the trigger covering ``line``; ``None`` when there is none."""

        text = self._owner.get_current_text()
        trigger = trigger_at(text, line)
        if trigger is None:
            LOGGER.debug("No trigger covers line %d", line)
            return None
        try:
            return await self._driver.start(trigger, text)
        finally:
            self.refresh()

    async def run_all(self) -> List[ReconciliationResult]:
        """Run triggers top to bottom until none remain or one does not complete.

        Each round re-scans, so blocks produced by a template run are picked
        up in document order.
        """

        results: List[ReconciliationResult] = []
        for _ in range(self._max_rounds):
            text = self._owner.get_current_text()
            triggers = scan(text)
            if not triggers:
                break
            result = await self._driver.start(triggers[0], text)
            results.append(result)
            if not result.ok:
                break
        else:
            LOGGER.warning("Stopped after %d rounds with triggers still pending", self._max_rounds)
        self.refresh()
        return results

    def close(self) -> None:
        self._cancel_pending()

    def _debounced_refresh(self) -> None:
        self._pending = None
        self.refresh()

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
