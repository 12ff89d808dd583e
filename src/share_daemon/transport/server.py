"""
JSON-RPC 2.0 server for the share daemon method table.

Each connection carries newline-delimited JSON-RPC messages. Requests are
handled in order per connection; params are positional (array) or named
(object).
"""

import asyncio
import inspect
import json
from typing import Any, Callable, Dict, Mapping, Optional

from ..utils.errors import InternalError, MethodNotFoundError, ShareDaemonError
from ..utils.logging import get_logger


logger = get_logger("share-daemon.transport")

MESSAGE_LIMIT = 1024 * 1024  # 1MB per message

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
APPLICATION_ERROR = -32000


def error_response(message_id: Any, code: int, message: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    error = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": message_id, "error": error}


def _error_code(error: ShareDaemonError) -> int:
    if isinstance(error, MethodNotFoundError):
        return METHOD_NOT_FOUND
    if isinstance(error, InternalError):
        return INTERNAL_ERROR
    return APPLICATION_ERROR


class RPCServer:
    """Serves a method table over TCP."""

    def __init__(self, methods: Mapping[str, Callable[..., Any]], host: str = "127.0.0.1", port: int = 45015):
        self.methods = methods
        self.host = host
        self.port = port
        self._server: Optional[asyncio.AbstractServer] = None
        self._connections: set = set()

    @property
    def address(self):
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[:2]

    async def start(self) -> None:
        self._server = await asyncio.start_server(
            self._handle_connection,
            self.host,
            self.port,
            limit=MESSAGE_LIMIT
        )
        host, port = self.address
        logger.info("rpc_server_listening", host=host, port=port)

    async def close(self) -> None:
        if self._server is None:
            return
        self._server.close()
        for writer in list(self._connections):
            writer.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("rpc_server_closed")

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        await self._server.serve_forever()

    async def _handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername")
        self._connections.add(writer)
        logger.debug("rpc_client_connected", peer=str(peer))
        try:
            while True:
                try:
                    line = await reader.readline()
                except ValueError:
                    response = error_response(None, INVALID_REQUEST, "message too large")
                    await self._send(writer, response)
                    continue
                if not line:
                    break
                if not line.strip():
                    continue

                response = await self.handle_line(line)
                if response is not None:
                    await self._send(writer, response)
        except ConnectionError as e:
            logger.debug("rpc_client_connection_lost", peer=str(peer), error=str(e))
        finally:
            self._connections.discard(writer)
            writer.close()
            logger.debug("rpc_client_disconnected", peer=str(peer))

    async def _send(self, writer: asyncio.StreamWriter, response: Dict[str, Any]) -> None:
        writer.write((json.dumps(response, default=str) + "\n").encode("utf-8"))
        await writer.drain()

    async def handle_line(self, line: bytes) -> Optional[Dict[str, Any]]:
        """Dispatch one raw message; returns None for notifications."""
        try:
            message = json.loads(line)
        except ValueError:
            return error_response(None, PARSE_ERROR, "parse error")
        return await self.dispatch(message)

    async def dispatch(self, message: Any) -> Optional[Dict[str, Any]]:
        """Dispatch a decoded JSON-RPC request to the method table."""
        if not isinstance(message, dict) or message.get("jsonrpc") != "2.0" \
                or not isinstance(message.get("method"), str):
            message_id = message.get("id") if isinstance(message, dict) else None
            return error_response(message_id, INVALID_REQUEST, "invalid request")

        message_id = message.get("id")
        method_name = message["method"]
        params = message.get("params", [])

        method = self.methods.get(method_name)
        if method is None:
            error = MethodNotFoundError(method_name)
            logger.warning("rpc_method_not_found", method=method_name)
            return error_response(message_id, METHOD_NOT_FOUND, error.message, error.to_dict())

        if isinstance(params, list):
            args, kwargs = params, {}
        elif isinstance(params, dict):
            args, kwargs = [], params
        else:
            return error_response(message_id, INVALID_PARAMS, "params must be an array or object")

        try:
            inspect.signature(method).bind(*args, **kwargs)
        except TypeError as e:
            return error_response(message_id, INVALID_PARAMS, str(e))

        logger.debug("rpc_request", method=method_name, id=message_id)
        outcome = await method(*args, **kwargs)

        if "id" not in message:
            return None
        if outcome.error is not None:
            return error_response(
                message_id,
                _error_code(outcome.error),
                outcome.error.message,
                outcome.error.to_dict()
            )
        return {"jsonrpc": "2.0", "id": message_id, "result": outcome.result}


__all__ = [
    'RPCServer',
    'error_response',
    'PARSE_ERROR',
    'INVALID_REQUEST',
    'METHOD_NOT_FOUND',
    'INVALID_PARAMS',
    'INTERNAL_ERROR',
    'APPLICATION_ERROR',
]
