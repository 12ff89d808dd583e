"""JSON-RPC client for talking to a running share daemon."""

import asyncio
import itertools
import json
from typing import Any, Optional

from .server import MESSAGE_LIMIT
from ..utils.errors import RemoteCallError, RPCError
from ..utils.logging import get_logger


logger = get_logger("share-daemon.client")


class RPCClient:
    """Sequential request/response client over one TCP connection."""

    def __init__(self, host: str = "127.0.0.1", port: int = 45015, timeout: Optional[float] = 30.0):
        self.host = host
        self.port = port
        self.timeout = timeout
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        try:
            self._reader, self._writer = await asyncio.open_connection(
                self.host, self.port, limit=MESSAGE_LIMIT
            )
        except OSError as e:
            raise RPCError(
                f"could not connect to daemon at {self.host}:{self.port}: {e.strerror or e}",
                cause=e
            ) from e
        logger.debug("rpc_client_connected", host=self.host, port=self.port)

    async def close(self) -> None:
        if self._writer is None:
            return
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except ConnectionError:
            pass
        self._reader = self._writer = None

    async def __aenter__(self) -> "RPCClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def call(self, method: str, *params: Any) -> Any:
        """
        Invoke a daemon method with positional params.

        Raises:
            RemoteCallError: If the daemon answered with an error
            RPCError: If the connection failed or timed out
        """
        if self._writer is None:
            await self.connect()

        message_id = next(self._ids)
        request = {"jsonrpc": "2.0", "id": message_id, "method": method, "params": list(params)}

        async with self._lock:
            try:
                self._writer.write((json.dumps(request) + "\n").encode("utf-8"))
                await self._writer.drain()
                line = await asyncio.wait_for(self._reader.readline(), timeout=self.timeout)
            except asyncio.TimeoutError as e:
                raise RPCError(f"request timeout for {method}", cause=e) from e
            except (ConnectionError, ValueError) as e:
                raise RPCError(f"request failed for {method}: {e}", cause=e) from e

        if not line:
            raise RPCError(f"daemon closed the connection during {method}")

        try:
            response = json.loads(line)
        except ValueError as e:
            raise RPCError("malformed response from daemon", cause=e) from e

        if response.get("id") != message_id:
            raise RPCError(f"unexpected response id {response.get('id')!r}")

        error = response.get("error")
        if error is not None:
            raise RemoteCallError(
                error.get("message", "unknown error"),
                rpc_code=error.get("code", 0),
                data=error.get("data")
            )
        return response.get("result")


__all__ = [
    'RPCClient',
]
