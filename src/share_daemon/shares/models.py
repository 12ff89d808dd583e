"""
Share data models.

A ShareRecord is the registry entry for one running or recently running
worker. Its ``state`` only moves through ``next_state`` in response to child
lifecycle events.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .process import ShareProcess


class ShareState(Enum):
    """Lifecycle state of a share."""
    RUNNING = "running"
    STOPPED = "stopped"
    ERRORED = "errored"


class ShareEvent(Enum):
    """Child process lifecycle events."""
    LAUNCHED = "launched"
    EXIT = "exit"
    ERROR = "error"


_TRANSITIONS = {
    ShareEvent.LAUNCHED: ShareState.RUNNING,
    ShareEvent.EXIT: ShareState.STOPPED,
    ShareEvent.ERROR: ShareState.ERRORED,
}


def next_state(state: ShareState, event: ShareEvent) -> ShareState:
    """
    Compute the state that follows a lifecycle event.

    An exit after an error keeps the share ERRORED so the fault stays visible
    until the share is destroyed or relaunched.
    """
    if state is ShareState.ERRORED and event is ShareEvent.EXIT:
        return ShareState.ERRORED
    return _TRANSITIONS[event]


@dataclass
class ShareMeta:
    """Runtime metadata reported alongside a share."""
    farmer_state: Optional[Dict[str, Any]] = None
    num_restarts: int = 0
    started_at: Optional[float] = None

    @property
    def uptime_ms(self) -> int:
        if self.started_at is None:
            return 0
        return int((time.monotonic() - self.started_at) * 1000)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "farmer_state": dict(self.farmer_state) if self.farmer_state is not None else {},
            "uptime_ms": self.uptime_ms,
            "num_restarts": self.num_restarts,
        }


@dataclass(eq=False)
class ShareRecord:
    """Registry entry owning one worker process."""
    id: str
    config_path: Path
    config: Dict[str, Any]
    log_path: Path
    process: Optional["ShareProcess"] = None
    state: ShareState = ShareState.STOPPED
    meta: ShareMeta = field(default_factory=ShareMeta)

    def apply(self, event: ShareEvent) -> ShareState:
        """Advance the record through the state machine."""
        self.state = next_state(self.state, event)
        if event is ShareEvent.LAUNCHED:
            self.meta.started_at = time.monotonic()
        elif self.state is not ShareState.RUNNING:
            self.meta.started_at = None
        return self.state

    def to_status(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "config": self.config,
            "state": self.state.value,
            "meta": self.meta.to_dict(),
        }


def merge_farmer_state(record: ShareRecord, message: Dict[str, Any]) -> None:
    """Merge a status message from the child into the record, key by key."""
    if record.meta.farmer_state is None:
        record.meta.farmer_state = {}
    for key, value in message.items():
        record.meta.farmer_state[key] = value


__all__ = [
    'ShareState',
    'ShareEvent',
    'ShareMeta',
    'ShareRecord',
    'next_state',
    'merge_farmer_state',
]
