"""
Tests for share config validators.
"""

import pytest
from collections import namedtuple

from share_daemon.utils import validators
from share_daemon.utils.errors import ValidationError
from share_daemon.utils.validators import (
    is_valid_payout_address, parse_size, validate_allocation, validate_share_config
)
from tests.fixtures.share_fixtures import ShareFixtures


DiskUsage = namedtuple("DiskUsage", "total used free percent")


class TestPayoutAddress:
    """Test payout address formats."""

    @pytest.mark.parametrize("address", [
        "0x5d6ab53a7c4d7f4b4b6d5c2d1f6b3a8e9c0d1e2f",
        "0x5D6AB53A7C4D7F4B4B6D5C2D1F6B3A8E9C0D1E2F",
        "1BoatSLRHtKNngkdXEeobR76b53LETtpyT",
        "3J98t1WpEZ73CNmQviecrnyiWrnqRhWNLy",
    ])
    def test_valid(self, address):
        assert is_valid_payout_address(address)

    @pytest.mark.parametrize("address", [
        None,
        "",
        "0x123",
        "5d6ab53a7c4d7f4b4b6d5c2d1f6b3a8e9c0d1e2f",
        "1BoatSLRHtKNngkdXEeobR76b53LETtpy0",
        12345,
    ])
    def test_invalid(self, address):
        assert not is_valid_payout_address(address)


class TestParseSize:
    """Test storage size parsing."""

    @pytest.mark.parametrize("value,expected", [
        ("2GB", 2 * 1000 ** 3),
        ("2 gb", 2 * 1000 ** 3),
        ("512MiB", 512 * 1024 ** 2),
        ("1.5TB", 1500 * 1000 ** 3),
        ("100", 100),
        (4096, 4096),
    ])
    def test_valid(self, value, expected):
        assert parse_size(value) == expected

    @pytest.mark.parametrize("value", ["", "lots", "-1GB", "0GB", 0, True, None, "2XB"])
    def test_invalid(self, value):
        assert parse_size(value) is None


class TestValidateShareConfig:
    """Test the synchronous field validator."""

    def test_valid(self, temp_dir):
        validate_share_config(ShareFixtures.config_data(temp_dir))

    def test_payout_address_checked_first(self, temp_dir):
        """Test that the payout address is reported before other fields."""
        config = {"networkPrivateKey": "nope", "storagePath": "/does/not/exist"}
        with pytest.raises(ValidationError) as exc_info:
            validate_share_config(config)
        assert exc_info.value.message == "invalid payout address"
        assert exc_info.value.field == "paymentAddress"

    def test_invalid_private_key(self, temp_dir):
        config = ShareFixtures.config_data(temp_dir, networkPrivateKey="abc")
        with pytest.raises(ValidationError, match="invalid network private key"):
            validate_share_config(config)

    def test_missing_storage_path(self, temp_dir):
        config = ShareFixtures.config_data(temp_dir / "missing")
        with pytest.raises(ValidationError, match="invalid storage path"):
            validate_share_config(config)


class TestValidateAllocation:
    """Test the asynchronous allocation validator."""

    @pytest.fixture
    def disk(self, monkeypatch):
        usage = DiskUsage(total=10 ** 9, used=0, free=10 ** 6, percent=0.0)
        monkeypatch.setattr(validators.psutil, "disk_usage", lambda path: usage)
        return usage

    @pytest.mark.asyncio
    async def test_fits(self, temp_dir, disk):
        await validate_allocation(ShareFixtures.config_data(temp_dir, storageAllocation="1MB"))

    @pytest.mark.asyncio
    async def test_too_large(self, temp_dir, disk):
        config = ShareFixtures.config_data(temp_dir, storageAllocation="2MB")
        with pytest.raises(ValidationError) as exc_info:
            await validate_allocation(config)
        assert exc_info.value.message.startswith("Invalid storage size:")

    @pytest.mark.asyncio
    async def test_used_space_counts_as_available(self, temp_dir, disk):
        """Test that data already in the storage path is part of the allocation."""
        (temp_dir / "shard").write_bytes(b"x" * 500_000)
        await validate_allocation(ShareFixtures.config_data(temp_dir, storageAllocation="1.4MB"))

    @pytest.mark.asyncio
    async def test_malformed_size(self, temp_dir, disk):
        config = ShareFixtures.config_data(temp_dir, storageAllocation="lots")
        with pytest.raises(ValidationError) as exc_info:
            await validate_allocation(config)
        assert exc_info.value.message == "Invalid storage size specified: lots"
