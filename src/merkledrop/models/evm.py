"""EVM value conventions: addresses, uint256 amounts and 32-byte hashes.

All entry points normalize through these helpers. Leaf hashing,
claim records and role tables agree on a single representation:
addresses in EIP-55 checksum form, amounts as plain ints, hashes as
32-byte ``bytes`` (``0x`` hex at the edges).
"""

from __future__ import annotations

from eth_utils import is_address, to_checksum_address

UINT256_MAX = 2**256 - 1
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_HASH = b"\x00" * 32


def normalize_address(value: str) -> str:
    """Validate an EVM address and return its checksum form.

    Raises ValueError for anything that is not a 20-byte hex address
    (mixed-case input must carry a valid checksum).
    """
    if not isinstance(value, str) or not is_address(value.strip()):
        raise ValueError(f"Invalid EVM address: {value!r}")
    return to_checksum_address(value.strip())


def require_uint256(value: int, label: str = "value") -> int:
    """Reject anything that would not fit a Solidity uint256."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{label} must be an integer, got {type(value).__name__}")
    if value < 0 or value > UINT256_MAX:
        raise ValueError(f"{label} out of uint256 range: {value}")
    return value


def to_hash32(value: bytes | str) -> bytes:
    """Accept a 32-byte hash as bytes or 0x-hex and return bytes."""
    if isinstance(value, str):
        text = value[2:] if value.startswith(("0x", "0X")) else value
        try:
            value = bytes.fromhex(text)
        except ValueError as e:
            raise ValueError(f"Invalid hex hash: {value!r}") from e
    if not isinstance(value, (bytes, bytearray)) or len(value) != 32:
        raise ValueError("Hash must be exactly 32 bytes")
    return bytes(value)


def hash_hex(value: bytes) -> str:
    """Render a hash as 0x-prefixed lowercase hex."""
    return "0x" + value.hex()
