"""
Node identity derivation.

A share is keyed by the node id of its network key: the RIPEMD-160 digest of
the SHA-256 digest of the compressed secp256k1 public key, rendered as hex.
"""

import hashlib
import re

from Crypto.Hash import RIPEMD160
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec


SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
NODE_ID_LENGTH = 40

_PRIVATE_KEY_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")


def is_valid_private_key(value: object) -> bool:
    """Check that a value is 32 bytes of hex inside the secp256k1 scalar range."""
    if not isinstance(value, str) or not _PRIVATE_KEY_PATTERN.match(value):
        return False
    return 0 < int(value, 16) < SECP256K1_ORDER


def public_key_bytes(private_key_hex: str) -> bytes:
    """Return the compressed SEC1 encoding of the public key for a private key."""
    private_key = ec.derive_private_key(int(private_key_hex, 16), ec.SECP256K1())
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.CompressedPoint,
    )


def derive_node_id(private_key_hex: str) -> str:
    """
    Derive the node id for a share from its network private key.

    Args:
        private_key_hex: 64 character hex encoded secp256k1 private key

    Returns:
        40 character lower-case hex node id

    Raises:
        ValueError: If the key material is not a valid private key
    """
    if not is_valid_private_key(private_key_hex):
        raise ValueError("invalid network private key")
    digest = hashlib.sha256(public_key_bytes(private_key_hex)).digest()
    return RIPEMD160.new(digest).hexdigest()


__all__ = [
    'derive_node_id',
    'is_valid_private_key',
    'public_key_bytes',
    'NODE_ID_LENGTH',
]
