"""Service layer for ClipTrail."""

from .change_detector import ChangeDetector
from .entry_store import EntryStore, Snapshot
from .history_service import HistoryService
from .memory_governor import GovernorState, MemoryGovernor
from .scheduler import PeriodicTask, SystemClock

__all__ = [
    "ChangeDetector",
    "EntryStore",
    "GovernorState",
    "HistoryService",
    "MemoryGovernor",
    "PeriodicTask",
    "Snapshot",
    "SystemClock",
]
