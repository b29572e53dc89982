"""Core data models for merkledrop."""

from merkledrop.models.airdrop import (
    DEFAULT_MAX_CLAIM_AMOUNT,
    PROFILE_RULES,
    AirdropStorage,
    DropProfile,
    LeafScheme,
    ProfileRules,
    Role,
)
from merkledrop.models.evm import (
    UINT256_MAX,
    ZERO_ADDRESS,
    ZERO_HASH,
    hash_hex,
    normalize_address,
    require_uint256,
    to_hash32,
)

__all__ = [
    "DEFAULT_MAX_CLAIM_AMOUNT",
    "PROFILE_RULES",
    "ProfileRules",
    "AirdropStorage",
    "DropProfile",
    "LeafScheme",
    "Role",
    "UINT256_MAX",
    "ZERO_ADDRESS",
    "ZERO_HASH",
    "hash_hex",
    "normalize_address",
    "require_uint256",
    "to_hash32",
]
