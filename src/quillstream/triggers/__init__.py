"""Trigger block scanning."""

from .scanner import (
    RegionKey,
    Trigger,
    TriggerKind,
    UpdateTopic,
    find_trigger,
    scan,
    split_update_topic,
    trigger_at,
)

__all__ = [
    "RegionKey",
    "Trigger",
    "TriggerKind",
    "UpdateTopic",
    "find_trigger",
    "scan",
    "split_update_topic",
    "trigger_at",
]
