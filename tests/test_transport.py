"""
Tests for the JSON-RPC transport.
"""

import asyncio
import json

import pytest

from share_daemon.transport.client import RPCClient
from share_daemon.transport.server import (
    APPLICATION_ERROR, INVALID_PARAMS, INVALID_REQUEST, METHOD_NOT_FOUND, PARSE_ERROR, RPCServer
)
from share_daemon.utils.errors import RemoteCallError, RPCError
from tests.fixtures.share_fixtures import NODE_ID


@pytest.fixture
async def server(daemon):
    server = RPCServer(daemon.methods, host="127.0.0.1", port=0)
    await server.start()
    yield server
    await server.close()


@pytest.fixture
async def client(server):
    host, port = server.address
    client = RPCClient(host=host, port=port, timeout=5.0)
    await client.connect()
    yield client
    await client.close()


class TestDispatch:
    """Test request dispatch without a socket."""

    @pytest.mark.asyncio
    async def test_parse_error(self, daemon):
        response = await RPCServer(daemon.methods).handle_line(b"{nope")
        assert response["error"]["code"] == PARSE_ERROR
        assert response["id"] is None

    @pytest.mark.parametrize("message", [
        [],
        {"id": 1, "method": "status"},
        {"jsonrpc": "2.0", "id": 1, "method": 5},
    ])
    @pytest.mark.asyncio
    async def test_invalid_request(self, daemon, message):
        response = await RPCServer(daemon.methods).dispatch(message)
        assert response["error"]["code"] == INVALID_REQUEST

    @pytest.mark.asyncio
    async def test_method_not_found(self, daemon):
        response = await RPCServer(daemon.methods).dispatch(
            {"jsonrpc": "2.0", "id": 7, "method": "format_disk"}
        )
        assert response["id"] == 7
        assert response["error"]["code"] == METHOD_NOT_FOUND
        assert response["error"]["message"] == "method format_disk does not exist"

    @pytest.mark.parametrize("params", [["a", "b"], "abc", {"bogus": 1}])
    @pytest.mark.asyncio
    async def test_invalid_params(self, daemon, params):
        response = await RPCServer(daemon.methods).dispatch(
            {"jsonrpc": "2.0", "id": 1, "method": "stop", "params": params}
        )
        assert response["error"]["code"] == INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_named_params(self, daemon):
        response = await RPCServer(daemon.methods).dispatch(
            {"jsonrpc": "2.0", "id": 1, "method": "stop", "params": {"share_id": "abc"}}
        )
        assert response["error"]["code"] == APPLICATION_ERROR
        assert response["error"]["data"]["code"] == "SHARE_NOT_RUNNING"

    @pytest.mark.asyncio
    async def test_notification_has_no_response(self, daemon):
        response = await RPCServer(daemon.methods).dispatch(
            {"jsonrpc": "2.0", "method": "status"}
        )
        assert response is None


class TestRoundTrip:
    """Test the client against a live server."""

    @pytest.mark.asyncio
    async def test_start_and_status(self, client, share_config):
        share = await client.call("start", str(share_config))
        assert share["id"] == NODE_ID

        [status] = await client.call("status")
        assert status["state"] == "running"

    @pytest.mark.asyncio
    async def test_remote_error(self, client):
        with pytest.raises(RemoteCallError) as exc_info:
            await client.call("stop", "abc")
        assert exc_info.value.message == "share abc is not running"
        assert exc_info.value.rpc_code == APPLICATION_ERROR
        assert exc_info.value.data["code"] == "SHARE_NOT_RUNNING"

    @pytest.mark.asyncio
    async def test_sequential_calls(self, client):
        for _ in range(3):
            assert await client.call("status") == []

    @pytest.mark.asyncio
    async def test_raw_lines(self, server):
        host, port = server.address
        reader, writer = await asyncio.open_connection(host, port)
        writer.write(b"\n{broken\n")
        await writer.drain()
        response = json.loads(await reader.readline())
        assert response["error"]["code"] == PARSE_ERROR
        writer.close()

    @pytest.mark.asyncio
    async def test_connection_refused(self, server):
        host, port = server.address
        await server.close()
        with pytest.raises(RPCError, match="could not connect"):
            async with RPCClient(host=host, port=port):
                pass
