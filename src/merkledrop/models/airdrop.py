"""Airdrop models: roles, profiles, leaf schemes and persistent storage.

The storage record is the only state an airdrop owns. It lives behind a
stable address (see merkledrop.runtime.proxy); executable logic
can be swapped while claim records, root and roles are preserved.

Invariants carried by this record:
- A claim record, once set, is never cleared (no API clears it).
- total_claimed only grows, and only together with a claim record.
- Role membership is independent of claim eligibility.
"""

from __future__ import annotations

import copy
import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set

from merkledrop.models.evm import ZERO_HASH, hash_hex, to_hash32


class Role(str, enum.Enum):
    """Named permission buckets used by the access gate."""
    DEFAULT_ADMIN = "DEFAULT_ADMIN_ROLE"
    ADMIN = "ADMIN_ROLE"
    PAUSER = "PAUSER_ROLE"
    CLAIM_MANAGER = "CLAIM_MANAGER_ROLE"
    MINTER = "MINTER_ROLE"


class DropProfile(str, enum.Enum):
    """Deployment profile.

    FIXED:     root fixed at construction; pause, claim bound and
               emergency withdraw governed by ADMIN/PAUSER roles.
    ROTATABLE: root rotatable and logic upgradeable by the single
               DEFAULT_ADMIN role.
    """
    FIXED = "fixed"
    ROTATABLE = "rotatable"


class LeafScheme(str, enum.Enum):
    """How entitlement leaves are encoded and how claims are recorded."""
    ACCOUNT = "account"   # leaf = H(account, amount); record keyed by address
    INDEXED = "indexed"   # leaf = H(index, account, amount); record is a bitmap


@dataclass
class AirdropStorage:
    """Persistent state of one airdrop deployment.

    Mutated only by the airdrop logic, inside a runtime transaction.
    """
    profile: DropProfile
    leaf_scheme: LeafScheme = LeafScheme.ACCOUNT
    token: Optional[str] = None
    merkle_root: bytes = ZERO_HASH
    claimed: Dict[str, bool] = field(default_factory=dict)
    claimed_bitmap: Dict[int, int] = field(default_factory=dict)
    total_claimed: int = 0
    paused: bool = False
    max_claim_amount: Optional[int] = None
    roles: Dict[str, Set[str]] = field(default_factory=dict)
    initialized: bool = False

    def snapshot(self) -> AirdropStorage:
        """Deep copy used by the runtime to restore state on failure."""
        return copy.deepcopy(self)

    def restore(self, snapshot: AirdropStorage) -> None:
        """Overwrite every field from a snapshot taken earlier."""
        self.__dict__.update(copy.deepcopy(snapshot.__dict__))

    def to_dict(self) -> dict[str, Any]:
        return {
            "profile": self.profile.value,
            "leaf_scheme": self.leaf_scheme.value,
            "token": self.token,
            "merkle_root": hash_hex(self.merkle_root),
            "claimed": sorted(a for a, done in self.claimed.items() if done),
            "claimed_bitmap": {str(k): hex(v) for k, v in self.claimed_bitmap.items()},
            "total_claimed": str(self.total_claimed),
            "paused": self.paused,
            "max_claim_amount": (
                None if self.max_claim_amount is None else str(self.max_claim_amount)
            ),
            "roles": {role: sorted(members) for role, members in self.roles.items()},
            "initialized": self.initialized,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> AirdropStorage:
        max_amount = data.get("max_claim_amount")
        return AirdropStorage(
            profile=DropProfile(data["profile"]),
            leaf_scheme=LeafScheme(data["leaf_scheme"]),
            token=data.get("token"),
            merkle_root=to_hash32(data["merkle_root"]),
            claimed={a: True for a in data.get("claimed", [])},
            claimed_bitmap={
                int(k): int(v, 16) for k, v in data.get("claimed_bitmap", {}).items()
            },
            total_claimed=int(data.get("total_claimed", "0")),
            paused=bool(data.get("paused", False)),
            max_claim_amount=None if max_amount is None else int(max_amount),
            roles={role: set(members) for role, members in data.get("roles", {}).items()},
            initialized=bool(data.get("initialized", False)),
        )


# Per-claim bound applied by the fixed profile unless configured otherwise.
DEFAULT_MAX_CLAIM_AMOUNT = 1000 * 10**18


@dataclass(frozen=True)
class ProfileRules:
    """Structural differences between the two deployment profiles."""
    admin_role: Role
    pause_role: Role
    role_admins: Dict[Role, Role]
    bootstrap_roles: tuple[Role, ...]
    root_rotatable: bool
    upgradeable: bool


PROFILE_RULES: Dict[DropProfile, ProfileRules] = {
    DropProfile.FIXED: ProfileRules(
        admin_role=Role.ADMIN,
        pause_role=Role.PAUSER,
        role_admins={Role.PAUSER: Role.ADMIN, Role.CLAIM_MANAGER: Role.ADMIN},
        bootstrap_roles=(Role.DEFAULT_ADMIN, Role.ADMIN, Role.PAUSER),
        root_rotatable=False,
        upgradeable=False,
    ),
    DropProfile.ROTATABLE: ProfileRules(
        admin_role=Role.DEFAULT_ADMIN,
        pause_role=Role.DEFAULT_ADMIN,
        role_admins={},
        bootstrap_roles=(Role.DEFAULT_ADMIN,),
        root_rotatable=True,
        upgradeable=True,
    ),
}
