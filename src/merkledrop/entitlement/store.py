"""Entitlement store: the active Merkle commitment and the claim record.

The claim record is keyed by address in the account scheme and by leaf
index (a bitmap of 256-bit words) in the indexed scheme. Either way an
entry, once set, is never cleared.

Root rotation does not touch the claim record. Entries dropped from the
new root become unreachable. In the account scheme an address that
claimed under an earlier root stays blocked under every later root. In
the indexed scheme the record is keyed by leaf position, not by
(address, root): an address placed at a fresh index in a later root can
claim a second time. Rounds are independent; the administrator rotating
the root must exclude addresses that already claimed.
"""

from __future__ import annotations

from typing import Callable, Optional

from merkledrop.access.gate import AccessGate
from merkledrop.errors import ImmutableConfiguration
from merkledrop.models.airdrop import AirdropStorage, DropProfile, LeafScheme, Role
from merkledrop.models.evm import hash_hex, normalize_address, require_uint256, to_hash32
from merkledrop.persistence.event_log import EventKind

Emitter = Callable[[EventKind, str, dict], None]


class EntitlementStore:
    """Holds the current root and answers claim-status queries.

    Usage:
        store = EntitlementStore(storage, gate, admin_role=Role.ADMIN, emit=emit)
        store.current_root()
        store.has_claimed(account)
        store.set_root(admin, new_root)
    """

    def __init__(
        self,
        storage: AirdropStorage,
        gate: AccessGate,
        admin_role: Role,
        emit: Emitter,
    ) -> None:
        self._storage = storage
        self._gate = gate
        self._admin_role = admin_role
        self._emit = emit

    @property
    def leaf_scheme(self) -> LeafScheme:
        return self._storage.leaf_scheme

    def current_root(self) -> bytes:
        return self._storage.merkle_root

    def has_claimed(self, account: str) -> bool:
        return self._storage.claimed.get(normalize_address(account), False)

    def is_claimed(self, index: int) -> bool:
        word_index, bit = divmod(require_uint256(index, "index"), 256)
        word = self._storage.claimed_bitmap.get(word_index, 0)
        return bool(word & (1 << bit))

    def total_claimed(self) -> int:
        return self._storage.total_claimed

    def already_claimed(self, account: str, index: Optional[int]) -> bool:
        """Claim-record lookup for the deployment's leaf scheme."""
        if self.leaf_scheme == LeafScheme.INDEXED:
            return self.is_claimed(_require_index(index))
        return self.has_claimed(account)

    def set_root(self, sender: str, new_root: bytes | str) -> None:
        """Replace the active commitment. Existing claim records are kept."""
        if self._storage.profile == DropProfile.FIXED:
            raise ImmutableConfiguration("Merkle root is fixed for this airdrop")
        self._gate.require(self._admin_role, sender)
        root = to_hash32(new_root)
        self._storage.merkle_root = root
        self._emit(EventKind.ROOT_UPDATED, normalize_address(sender), {"root": hash_hex(root)})

    def record_claim(self, account: str, amount: int, index: Optional[int]) -> None:
        """Mark the entitlement redeemed and add to the running total.

        In the indexed scheme the address map is also set, for
        information only: the bitmap is what gates repeat claims.
        """
        account = normalize_address(account)
        total = require_uint256(self._storage.total_claimed + amount, "total_claimed")
        if self.leaf_scheme == LeafScheme.INDEXED:
            word_index, bit = divmod(_require_index(index), 256)
            word = self._storage.claimed_bitmap.get(word_index, 0)
            self._storage.claimed_bitmap[word_index] = word | (1 << bit)
        self._storage.claimed[account] = True
        self._storage.total_claimed = total


def _require_index(index: Optional[int]) -> int:
    if index is None:
        raise ValueError("Indexed airdrop claims require a leaf index")
    return require_uint256(index, "index")
