"""Storage layer for computed analytics snapshots."""

from pulse.storage.base import SnapshotStore
from pulse.storage.memory import InMemorySnapshotStore

__all__ = ["InMemorySnapshotStore", "SnapshotStore"]
