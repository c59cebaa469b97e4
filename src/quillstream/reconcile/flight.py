"""Single-flight state token for reconciliation sessions."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Union

from ..triggers.scanner import RegionKey

__all__ = ["Active", "FlightGate", "FlightState", "Idle", "ReconciliationBusyError"]

LOGGER = logging.getLogger(__name__)


class ReconciliationBusyError(RuntimeError):
    """Raised when a session is requested while another one holds the gate."""


@dataclass(slots=True, frozen=True)
class Idle:
    pass


@dataclass(slots=True, frozen=True)
class Active:
    """Token held by the one running session."""

    session_id: str
    key: RegionKey


FlightState = Union[Idle, Active]


class FlightGate:
    """Allows at most one session at a time.

    :meth:`acquire` hands out an :class:`Active` token and only that token
    returns the gate to :class:`Idle`.
    """

    def __init__(self) -> None:
        self._state: FlightState = Idle()

    @property
    def state(self) -> FlightState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return isinstance(self._state, Active)

    def acquire(self, key: RegionKey | tuple[int, int], *, session_id: str | None = None) -> Active:
        if isinstance(self._state, Active):
            raise ReconciliationBusyError(
                f"Session {self._state.session_id} is already running"
            )
        token = Active(session_id=session_id or f"session-{uuid.uuid4().hex[:8]}", key=RegionKey(*key))
        self._state = token
        return token

    def release(self, token: Active) -> bool:
        """Return the gate to idle; a token that does not hold it is ignored."""

        if self._state != token:
            LOGGER.warning("Ignoring release with stale token %s", token.session_id)
            return False
        self._state = Idle()
        return True
