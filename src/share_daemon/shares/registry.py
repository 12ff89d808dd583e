"""
In-memory share registry.

The registry is the only shared mutable table in the daemon. Inserts, removals
and reservations are serialized through one asyncio lock; a reservation holds
an id between the duplicate check and the insert so two concurrent starts of
the same share cannot both pass the check.
"""

import asyncio
from typing import Dict, Iterator, List, Optional, Set

from .models import ShareRecord, ShareState
from ..utils.errors import DuplicateShareError
from ..utils.logging import get_logger


logger = get_logger("share-daemon.registry")


class Reservation:
    """Claim on a share id, held from the duplicate check until insert."""

    def __init__(self, registry: "ShareRegistry", share_id: str):
        self.registry = registry
        self.share_id = share_id
        self.released = False

    def release(self) -> None:
        """Give up the claim without inserting; safe to call twice."""
        if not self.released:
            self.registry._pending.discard(self.share_id)
            self.released = True


class ShareRegistry:
    """Authoritative table of share records keyed by node id."""

    def __init__(self):
        self._records: Dict[str, ShareRecord] = {}
        self._pending: Set[str] = set()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, share_id: object) -> bool:
        return share_id in self._records

    def __iter__(self) -> Iterator[ShareRecord]:
        return iter(list(self._records.values()))

    def get(self, share_id: str) -> Optional[ShareRecord]:
        return self._records.get(share_id)

    def ids(self) -> List[str]:
        return list(self._records)

    def records(self) -> List[ShareRecord]:
        return list(self._records.values())

    async def reserve(self, share_id: str) -> Reservation:
        """
        Claim an id for a pending start.

        Raises:
            DuplicateShareError: If the id belongs to a share that is not
                stopped, or another start is already holding it
        """
        async with self._lock:
            existing = self._records.get(share_id)
            if share_id in self._pending or (
                existing is not None and existing.state is not ShareState.STOPPED
            ):
                raise DuplicateShareError(share_id)
            self._pending.add(share_id)
        logger.debug("share_id_reserved", share_id=share_id)
        return Reservation(self, share_id)

    async def insert(self, record: ShareRecord, reservation: Reservation) -> None:
        """Store a record, consuming the reservation that guarded its id."""
        if reservation.released or reservation.share_id != record.id:
            raise ValueError(f"no active reservation for share {record.id}")
        async with self._lock:
            self._records[record.id] = record
            reservation.release()
        logger.debug("share_inserted", share_id=record.id, state=record.state.value)

    async def remove(self, share_id: str, record: Optional[ShareRecord] = None) -> Optional[ShareRecord]:
        """
        Remove the entry for an id.

        When ``record`` is given the entry is only removed if it is still that
        record, so a stale caller cannot drop a newer share under the same id.
        """
        async with self._lock:
            current = self._records.get(share_id)
            if current is None or (record is not None and current is not record):
                return None
            del self._records[share_id]
        logger.debug("share_removed", share_id=share_id)
        return current


__all__ = [
    'ShareRegistry',
    'Reservation',
]
