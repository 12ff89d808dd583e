"""
Share configuration validators.

``validate_share_config`` is the synchronous field validator and
``validate_allocation`` the asynchronous storage allocation check used by the
share config loader. Both raise ValidationError with a human readable message;
the loader decides how the message is surfaced.
"""

import asyncio
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional, Union

import psutil

from .errors import ValidationError
from ..identity import is_valid_private_key


_ERC20_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40}$")
_BASE58_ADDRESS = re.compile(r"^[13mn2][1-9A-HJ-NP-Za-km-z]{25,34}$")
_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([KMGTP]?i?B)?\s*$", re.IGNORECASE)

_UNITS = {
    "": 1,
    "B": 1,
    "KB": 1000,
    "MB": 1000 ** 2,
    "GB": 1000 ** 3,
    "TB": 1000 ** 4,
    "PB": 1000 ** 5,
    "KIB": 1024,
    "MIB": 1024 ** 2,
    "GIB": 1024 ** 3,
    "TIB": 1024 ** 4,
    "PIB": 1024 ** 5,
}


def is_valid_payout_address(address: Any) -> bool:
    """Accept ERC20 style hex addresses and base58 bitcoin style addresses."""
    if not isinstance(address, str):
        return False
    return bool(_ERC20_ADDRESS.match(address) or _BASE58_ADDRESS.match(address))


def parse_size(value: Union[str, int, float]) -> Optional[int]:
    """Parse ``"2TB"``, ``"512MiB"`` or a plain byte count. Returns None if unparsable."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if value > 0 else None
    if not isinstance(value, str):
        return None
    match = _SIZE_PATTERN.match(value)
    if not match:
        return None
    amount, unit = match.groups()
    size = int(float(amount) * _UNITS[(unit or "").upper()])
    return size if size > 0 else None


def validate_share_config(config: Dict[str, Any]) -> None:
    """
    Validate the fields of a share config the daemon depends on.

    Raises:
        ValidationError: On the first field that fails
    """
    if not is_valid_payout_address(config.get("paymentAddress")):
        raise ValidationError("invalid payout address", field="paymentAddress")
    if not is_valid_private_key(config.get("networkPrivateKey")):
        raise ValidationError("invalid network private key", field="networkPrivateKey")
    storage_path = config.get("storagePath")
    if not isinstance(storage_path, str) or not Path(storage_path).expanduser().is_dir():
        raise ValidationError("invalid storage path", field="storagePath")


def _directory_size(path: Path) -> int:
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            try:
                total += os.lstat(os.path.join(root, name)).st_size
            except OSError:
                continue
    return total


async def validate_allocation(config: Dict[str, Any]) -> None:
    """
    Check that the requested storage allocation fits on the storage volume.

    Space already used inside the storage path counts as available, since it
    belongs to the share.

    Raises:
        ValidationError: If the size is malformed or exceeds available space
    """
    requested = config.get("storageAllocation")
    allocation = parse_size(requested)
    if allocation is None:
        raise ValidationError(
            f"Invalid storage size specified: {requested}", field="storageAllocation"
        )

    storage_path = Path(config["storagePath"]).expanduser()
    used = await asyncio.to_thread(_directory_size, storage_path)
    usage = await asyncio.to_thread(psutil.disk_usage, str(storage_path))
    available = usage.free + used

    if allocation > available:
        raise ValidationError(
            f"Invalid storage size: {allocation} bytes requested, "
            f"only {available} bytes available",
            field="storageAllocation"
        )


__all__ = [
    'is_valid_payout_address',
    'parse_size',
    'validate_share_config',
    'validate_allocation',
]
