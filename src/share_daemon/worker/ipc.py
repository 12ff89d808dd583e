"""
Worker side of the status channel.

The daemon passes the write end of a pipe to each worker and publishes its fd
number in ``SHARE_DAEMON_IPC_FD``. Workers report status as newline-delimited
JSON objects; the daemon merges every key into the share's farmer state.
"""

import json
import os
from typing import Any, Dict, Mapping, Optional

from ..utils.logging import get_logger


logger = get_logger("share-daemon.worker.ipc")

IPC_FD_ENV = "SHARE_DAEMON_IPC_FD"


class IPCReporter:
    """Sends status updates to the supervising daemon.

    Without an inherited channel every send is a no-op, so workers can run
    standalone.
    """

    def __init__(self, fd: Optional[int] = None, env: Optional[Mapping[str, str]] = None):
        if fd is None:
            value = (os.environ if env is None else env).get(IPC_FD_ENV)
            fd = int(value) if value and value.isdigit() else None
        self._stream = os.fdopen(fd, 'w', buffering=1, encoding='utf-8') if fd is not None else None

    @property
    def connected(self) -> bool:
        return self._stream is not None

    def send(self, status: Dict[str, Any]) -> None:
        """Write one status object to the daemon."""
        if self._stream is None:
            return
        try:
            self._stream.write(json.dumps(status, default=str) + "\n")
        except BrokenPipeError:
            logger.warning("ipc_channel_closed")
            self.close()

    def close(self) -> None:
        if self._stream is None:
            return
        try:
            self._stream.close()
        except BrokenPipeError:
            pass
        self._stream = None

    def __enter__(self) -> "IPCReporter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = [
    'IPCReporter',
    'IPC_FD_ENV',
]
