"""Editable surface adapters, discovery and topology tracking."""

from .adapters import FlatAdapter, StructuredAdapter, SurfaceContext, SurfaceHandle, SurfaceKind
from .registry import ScanResult, SurfaceRegistry
from .scheduling import AsyncioScheduler, Debouncer, Scheduler
from .topology import TopologyWatcher

__all__ = [
    "AsyncioScheduler",
    "Debouncer",
    "FlatAdapter",
    "ScanResult",
    "Scheduler",
    "StructuredAdapter",
    "SurfaceContext",
    "SurfaceHandle",
    "SurfaceKind",
    "SurfaceRegistry",
    "TopologyWatcher",
]
