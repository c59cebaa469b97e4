"""Reconciliation of streamed generations into fenced trigger blocks."""

from .context import ContextFile, ContextProvider, StaticContext, WorkspaceContext
from .controller import TriggerController
from .driver import (
    ReconciliationDriver,
    ReconciliationResult,
    ReconciliationSession,
    ReconciliationStatus,
)
from .flight import Active, FlightGate, Idle, ReconciliationBusyError
from .registry import (
    ProcessingRegistry,
    RegionBusyError,
    RegistryFullError,
    TriggerAffordance,
    intersect_active,
)

__all__ = [
    "Active",
    "ContextFile",
    "ContextProvider",
    "FlightGate",
    "Idle",
    "ProcessingRegistry",
    "ReconciliationBusyError",
    "ReconciliationDriver",
    "ReconciliationResult",
    "ReconciliationSession",
    "ReconciliationStatus",
    "RegionBusyError",
    "RegistryFullError",
    "StaticContext",
    "TriggerAffordance",
    "TriggerController",
    "WorkspaceContext",
    "intersect_active",
]
