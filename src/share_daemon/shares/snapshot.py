"""
Snapshot persistence for the set of running shares.

A snapshot is a JSON array of ``{"path", "id"}`` objects, one per registry
record, that ``load`` replays through ``start``.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Union

import aiofiles

from .models import ShareRecord
from ..utils.errors import SnapshotParseError, SnapshotReadError, SnapshotWriteError
from ..utils.logging import get_logger


logger = get_logger("share-daemon.snapshot")


@dataclass
class SnapshotEntry:
    """One share recorded in a snapshot."""
    path: str
    id: Optional[str] = None

    def to_dict(self):
        return {"path": self.path, "id": self.id}


def _reason(error: OSError) -> str:
    return error.strerror or str(error)


class SnapshotStore:
    """Reads and writes snapshot files."""

    async def save(self, path: Union[str, Path], records: Iterable[ShareRecord]) -> List[SnapshotEntry]:
        """
        Write the config path and id of every record.

        Raises:
            SnapshotWriteError: If the file cannot be written
        """
        path = Path(path).expanduser()
        entries = [SnapshotEntry(path=str(r.config_path), id=r.id) for r in records]
        payload = json.dumps([e.to_dict() for e in entries], indent=2)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, 'w') as f:
                await f.write(payload)
        except OSError as e:
            raise SnapshotWriteError(_reason(e), cause=e) from e

        logger.info("snapshot_saved", path=str(path), shares=len(entries))
        return entries

    async def load(self, path: Union[str, Path]) -> List[SnapshotEntry]:
        """
        Read the entries of a snapshot file.

        Raises:
            SnapshotReadError: If the file cannot be read
            SnapshotParseError: If the file is not a snapshot document
        """
        path = Path(path).expanduser()
        try:
            async with aiofiles.open(path, 'r') as f:
                content = await f.read()
        except OSError as e:
            raise SnapshotReadError(_reason(e), cause=e) from e

        try:
            data = json.loads(content)
        except ValueError as e:
            raise SnapshotParseError(cause=e) from e

        if not isinstance(data, list):
            raise SnapshotParseError()

        entries = []
        for item in data:
            if not isinstance(item, dict) or not isinstance(item.get("path"), str):
                raise SnapshotParseError()
            entries.append(SnapshotEntry(path=item["path"], id=item.get("id")))

        logger.info("snapshot_loaded", path=str(path), shares=len(entries))
        return entries


__all__ = [
    'SnapshotStore',
    'SnapshotEntry',
]
