"""Configuration snapshot, options and store collaborators."""

from .options import DEFAULT_EDITABLE_SELECTORS, EngineOptions, TriggerPolicy
from .snapshot import ConfigSnapshot, SnapshotHolder
from .store import (
    ConfigStore,
    JsonConfigStore,
    MemoryConfigStore,
    UsageRecord,
)

__all__ = [
    "ConfigSnapshot",
    "ConfigStore",
    "DEFAULT_EDITABLE_SELECTORS",
    "EngineOptions",
    "JsonConfigStore",
    "MemoryConfigStore",
    "SnapshotHolder",
    "TriggerPolicy",
    "UsageRecord",
]
