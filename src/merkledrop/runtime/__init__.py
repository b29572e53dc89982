"""Runtime: serialized transactional chain and upgradeable airdrop proxy."""

from merkledrop.runtime.chain import Chain, Contract
from merkledrop.runtime.proxy import (
    LOGIC_REGISTRY,
    AirdropLogic,
    AirdropProxy,
    register_logic,
)

__all__ = [
    "AirdropLogic",
    "AirdropProxy",
    "Chain",
    "Contract",
    "LOGIC_REGISTRY",
    "register_logic",
]
