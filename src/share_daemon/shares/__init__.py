"""Share registry, config pipeline, process supervision and snapshots."""

from .models import ShareState, ShareEvent, ShareMeta, ShareRecord, next_state, merge_farmer_state
from .registry import ShareRegistry, Reservation
from .config_loader import ShareConfigLoader, LoadedShareConfig
from .process import ShareProcess, ShareSupervisor
from .snapshot import SnapshotStore, SnapshotEntry

__all__ = [
    "ShareState",
    "ShareEvent",
    "ShareMeta",
    "ShareRecord",
    "next_state",
    "merge_farmer_state",
    "ShareRegistry",
    "Reservation",
    "ShareConfigLoader",
    "LoadedShareConfig",
    "ShareProcess",
    "ShareSupervisor",
    "SnapshotStore",
    "SnapshotEntry",
]
