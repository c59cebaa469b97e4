"""Reconciliation driver streaming generated text into a fenced block.

One session at a time splices the accumulated output over the trigger's
original line range of a frozen base snapshot and pushes the whole document
to its owner. Pushes always start from the base snapshot, so a user edit made
while a session runs is overwritten by the next push (last write wins); the
driver detects and reports that case and can lock the document instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from ..ai.backends import GenerationBackend
from ..ai.errors import GenerationError, describe_failure
from ..editor.document_model import DocumentOwner, LockableDocument
from ..editor.splice import splice_text
from ..events import (
    ChunkApplied,
    DocumentLockChanged,
    EventBus,
    ReconciliationCompleted,
    ReconciliationFailed,
    ReconciliationRejected,
    ReconciliationStarted,
    UserEditOverwritten,
)
from ..services.settings import Settings
from ..triggers.scanner import Trigger, find_trigger
from .context import ContextProvider, StaticContext
from .flight import Active, FlightGate
from .prompts import build_request
from .registry import ProcessingRegistry, RegionBusyError, RegistryFullError

__all__ = [
    "ErrorReporter",
    "ReconciliationDriver",
    "ReconciliationResult",
    "ReconciliationSession",
    "ReconciliationStatus",
]

LOGGER = logging.getLogger(__name__)

ErrorReporter = Callable[[str], None]


class ReconciliationStatus(Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    REJECTED = "rejected"


@dataclass(slots=True)
class ReconciliationSession:
    """State of the running session; discarded when it ends."""

    session_id: str
    trigger: Trigger
    base_document: str
    accumulated_output: str = ""
    chunk_count: int = 0
    push_count: int = 0
    last_pushed: str | None = None

    def append(self, chunk: str) -> None:
        self.accumulated_output += chunk
        self.chunk_count += 1

    def render(self) -> str:
        """Splice the output so far over the trigger range of the base snapshot."""

        return splice_text(
            self.base_document,
            self.trigger.start_line,
            self.trigger.end_line,
            self.accumulated_output,
        ).text


@dataclass(slots=True)
class ReconciliationResult:
    status: ReconciliationStatus
    trigger: Trigger
    session_id: str | None = None
    document: str | None = None
    error_message: str | None = None
    chunk_count: int = 0
    push_count: int = 0

    @property
    def ok(self) -> bool:
        return self.status is ReconciliationStatus.COMPLETED


class ReconciliationDriver:
    """Owns the lifecycle of one generation at a time."""

    def __init__(
        self,
        owner: DocumentOwner,
        backend: GenerationBackend,
        *,
        registry: ProcessingRegistry | None = None,
        gate: FlightGate | None = None,
        context: ContextProvider | None = None,
        settings: Settings | None = None,
        error_reporter: ErrorReporter | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._owner = owner
        self._backend = backend
        self._registry = registry or ProcessingRegistry()
        self._gate = gate or FlightGate()
        self._context = context or StaticContext()
        self._settings = settings or Settings()
        self._report_error = error_reporter or _log_error
        self._bus = event_bus
        self._push_every = max(1, int(self._settings.push_every))
        self._session: ReconciliationSession | None = None

    @property
    def registry(self) -> ProcessingRegistry:
        return self._registry

    @property
    def gate(self) -> FlightGate:
        return self._gate

    @property
    def busy(self) -> bool:
        return self._gate.is_busy

    @property
    def active_session(self) -> ReconciliationSession | None:
        return self._session

    async def start(self, trigger: Trigger, current_document: str | None = None) -> ReconciliationResult:
        """Generate ``trigger`` into the document.

        Returns a ``REJECTED`` result without touching any state when another
        session is running, the region is already active, or ``trigger`` no
        longer matches ``current_document``. Generation failures are reported
        through the error reporter and returned as ``FAILED``; they are never
        raised.
        """

        document = self._owner.get_current_text() if current_document is None else current_document
        reason = self._rejection_reason(trigger, document)
        if reason is not None:
            return self._reject(trigger, reason)

        token = self._gate.acquire(trigger.key)
        try:
            self._registry.add(trigger.key)
        except (RegionBusyError, RegistryFullError) as exc:
            self._gate.release(token)
            return self._reject(trigger, str(exc))

        session = ReconciliationSession(
            session_id=token.session_id,
            trigger=trigger,
            base_document=document,
        )
        self._session = session
        LOGGER.info(
            "Reconciliation %s started for %s block at lines %d-%d",
            session.session_id,
            trigger.kind.value,
            trigger.start_line,
            trigger.end_line,
        )
        self._publish(
            ReconciliationStarted(session_id=session.session_id, key=trigger.key, kind=trigger.kind.value)
        )
        locked = self._lock_owner(token)
        try:
            return await self._run(session)
        finally:
            if locked:
                self._unlock_owner(token)
            self._registry.remove(trigger.key)
            self._gate.release(token)
            self._session = None

    async def _run(self, session: ReconciliationSession) -> ReconciliationResult:
        trigger = session.trigger
        try:
            request = build_request(
                trigger,
                session.base_document,
                self._context.collect(),
                model=self._settings.model,
                credential=self._settings.api_key,
            )
            async for chunk in self._backend.stream(request):
                if not chunk:
                    continue
                session.append(chunk)
                if session.chunk_count % self._push_every == 0:
                    self._push(session)
            final_document = self._push(session)
        except Exception as exc:
            message = describe_failure(exc)
            if isinstance(exc, GenerationError):
                LOGGER.warning("Reconciliation %s failed: %s", session.session_id, exc)
            else:
                LOGGER.exception("Reconciliation %s failed unexpectedly", session.session_id)
            self._report_error(message)
            self._publish(
                ReconciliationFailed(
                    session_id=session.session_id,
                    key=trigger.key,
                    message=message,
                    error_type=type(exc).__name__,
                )
            )
            return ReconciliationResult(
                status=ReconciliationStatus.FAILED,
                trigger=trigger,
                session_id=session.session_id,
                document=session.last_pushed,
                error_message=message,
                chunk_count=session.chunk_count,
                push_count=session.push_count,
            )

        LOGGER.info(
            "Reconciliation %s completed (%d chunks, %d pushes, %d chars)",
            session.session_id,
            session.chunk_count,
            session.push_count,
            len(session.accumulated_output),
        )
        self._publish(
            ReconciliationCompleted(
                session_id=session.session_id,
                key=trigger.key,
                chunk_count=session.chunk_count,
                push_count=session.push_count,
            )
        )
        return ReconciliationResult(
            status=ReconciliationStatus.COMPLETED,
            trigger=trigger,
            session_id=session.session_id,
            document=final_document,
            chunk_count=session.chunk_count,
            push_count=session.push_count,
        )

    def _push(self, session: ReconciliationSession) -> str:
        expected = session.base_document if session.last_pushed is None else session.last_pushed
        live = self._owner.get_current_text()
        if live != expected:
            LOGGER.warning(
                "Reconciliation %s is overwriting a concurrent edit to the document",
                session.session_id,
            )
            self._publish(
                UserEditOverwritten(
                    session_id=session.session_id,
                    key=session.trigger.key,
                    lost_chars=abs(len(live) - len(expected)),
                )
            )
        candidate = session.render()
        self._owner.replace_all_text(candidate)
        session.last_pushed = candidate
        session.push_count += 1
        self._publish(
            ChunkApplied(
                session_id=session.session_id,
                chunk_count=session.chunk_count,
                push_count=session.push_count,
                output_chars=len(session.accumulated_output),
            )
        )
        return candidate

    def _rejection_reason(self, trigger: Trigger, document: str) -> str | None:
        if self._gate.is_busy:
            return "another reconciliation is in progress"
        if self._registry.is_active(trigger.key):
            return "region is already being generated"
        if find_trigger(document, trigger.key) != trigger:
            return "trigger does not match the current document"
        return None

    def _reject(self, trigger: Trigger, reason: str) -> ReconciliationResult:
        LOGGER.info(
            "Rejected %s block at lines %d-%d: %s",
            trigger.kind.value,
            trigger.start_line,
            trigger.end_line,
            reason,
        )
        self._publish(ReconciliationRejected(key=trigger.key, reason=reason))
        return ReconciliationResult(
            status=ReconciliationStatus.REJECTED, trigger=trigger, error_message=reason
        )

    def _lock_owner(self, token: Active) -> bool:
        if not self._settings.lock_document_during_generation:
            return False
        if not isinstance(self._owner, LockableDocument):
            LOGGER.debug("Document owner cannot be locked; continuing unlocked")
            return False
        self._owner.set_readonly(True)
        self._publish(DocumentLockChanged(locked=True, session_id=token.session_id))
        return True

    def _unlock_owner(self, token: Active) -> None:
        owner = self._owner
        if isinstance(owner, LockableDocument):
            owner.set_readonly(False)
        self._publish(DocumentLockChanged(locked=False, session_id=token.session_id))

    def _publish(self, event) -> None:
        if self._bus is not None:
            self._bus.publish(event)


def _log_error(message: str) -> None:
    LOGGER.error("%s", message)
