"""
Tests for share records and the share registry.
"""

import asyncio
from pathlib import Path

import pytest

from share_daemon.shares.models import (
    ShareEvent, ShareMeta, ShareRecord, ShareState, merge_farmer_state, next_state
)
from share_daemon.utils.errors import DuplicateShareError


def make_record(share_id: str = "abc", state: ShareState = ShareState.STOPPED) -> ShareRecord:
    record = ShareRecord(
        id=share_id,
        config_path=Path("/tmp/share.json"),
        config={},
        log_path=Path("/tmp/share.log"),
    )
    record.state = state
    return record


class TestStateMachine:
    """Test lifecycle transitions."""

    @pytest.mark.parametrize("state", list(ShareState))
    def test_launched(self, state):
        assert next_state(state, ShareEvent.LAUNCHED) is ShareState.RUNNING

    def test_exit_stops(self):
        assert next_state(ShareState.RUNNING, ShareEvent.EXIT) is ShareState.STOPPED

    @pytest.mark.parametrize("state", [ShareState.RUNNING, ShareState.STOPPED])
    def test_error(self, state):
        assert next_state(state, ShareEvent.ERROR) is ShareState.ERRORED

    def test_exit_after_error_keeps_error(self):
        assert next_state(ShareState.ERRORED, ShareEvent.EXIT) is ShareState.ERRORED

    def test_apply_tracks_uptime(self):
        record = make_record()
        assert record.meta.uptime_ms == 0
        record.apply(ShareEvent.LAUNCHED)
        assert record.meta.started_at is not None
        record.apply(ShareEvent.EXIT)
        assert record.state is ShareState.STOPPED
        assert record.meta.started_at is None


class TestFarmerState:
    """Test merging of IPC status messages."""

    def test_created_lazily(self):
        record = make_record()
        assert record.meta.farmer_state is None
        merge_farmer_state(record, {"peers": 3})
        assert record.meta.farmer_state == {"peers": 3}

    def test_last_writer_wins_per_key(self):
        record = make_record()
        merge_farmer_state(record, {"peers": 3, "bridges": "connected"})
        merge_farmer_state(record, {"peers": 5})
        assert record.meta.farmer_state == {"peers": 5, "bridges": "connected"}

    def test_status_payload(self):
        record = make_record(state=ShareState.RUNNING)
        record.config = {"storageAllocation": "1GB"}
        status = record.to_status()
        assert status["id"] == "abc"
        assert status["state"] == "running"
        assert status["config"] == {"storageAllocation": "1GB"}
        assert status["meta"] == {"farmer_state": {}, "uptime_ms": 0, "num_restarts": 0}

    def test_meta_defaults(self):
        assert ShareMeta().to_dict()["num_restarts"] == 0


class TestShareRegistry:
    """Test registry bookkeeping."""

    @pytest.mark.asyncio
    async def test_insert_and_get(self, registry):
        record = make_record()
        reservation = await registry.reserve("abc")
        await registry.insert(record, reservation)

        assert registry.get("abc") is record
        assert "abc" in registry
        assert len(registry) == 1
        assert registry.ids() == ["abc"]
        assert reservation.released

    @pytest.mark.asyncio
    async def test_reserve_blocks_concurrent_start(self, registry):
        """Test that a pending id cannot be reserved twice."""
        await registry.reserve("abc")
        with pytest.raises(DuplicateShareError, match="share abc is already running"):
            await registry.reserve("abc")

    @pytest.mark.asyncio
    async def test_concurrent_reservations(self, registry):
        results = await asyncio.gather(
            registry.reserve("abc"),
            registry.reserve("abc"),
            return_exceptions=True
        )
        assert sum(isinstance(r, DuplicateShareError) for r in results) == 1

    @pytest.mark.asyncio
    async def test_release_frees_id(self, registry):
        reservation = await registry.reserve("abc")
        reservation.release()
        reservation.release()
        await registry.reserve("abc")

    @pytest.mark.parametrize("state", [ShareState.RUNNING, ShareState.ERRORED])
    @pytest.mark.asyncio
    async def test_reserve_rejects_active_record(self, registry, state):
        await registry.insert(make_record(state=state), await registry.reserve("abc"))
        with pytest.raises(DuplicateShareError):
            await registry.reserve("abc")

    @pytest.mark.asyncio
    async def test_reserve_allows_stopped_record(self, registry):
        await registry.insert(make_record(), await registry.reserve("abc"))
        reservation = await registry.reserve("abc")
        assert reservation.share_id == "abc"

    @pytest.mark.asyncio
    async def test_insert_requires_reservation(self, registry):
        reservation = await registry.reserve("other")
        with pytest.raises(ValueError):
            await registry.insert(make_record(), reservation)

    @pytest.mark.asyncio
    async def test_remove(self, registry):
        record = make_record()
        await registry.insert(record, await registry.reserve("abc"))
        assert await registry.remove("abc") is record
        assert registry.get("abc") is None
        assert await registry.remove("abc") is None

    @pytest.mark.asyncio
    async def test_remove_ignores_stale_record(self, registry):
        """Test that removing an old record keeps the newer one."""
        old = make_record()
        new = make_record()
        await registry.insert(new, await registry.reserve("abc"))
        assert await registry.remove("abc", old) is None
        assert registry.get("abc") is new
