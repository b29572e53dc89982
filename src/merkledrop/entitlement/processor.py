"""Claim processor: validates a claim and issues the entitled tokens.

Validation order (first failure wins):
    1. claims paused                      -> Paused
    2. entitlement already redeemed       -> AlreadyClaimed
    3. amount is zero                     -> ZeroAmount
    4. amount above the configured bound  -> ExceedsMaxClaimAmount
    5. proof does not fold to the root    -> InvalidProof

can_claim() runs the very same check() as claim(), so the pre-check can
never disagree with the real operation.

On success the claim record and running total are updated before the
minting call. If minting fails, both are restored and the failure is
re-raised; when running on a Chain the enclosing transaction restores
everything else as well.
"""

from __future__ import annotations

from typing import Callable, Optional, Protocol, Sequence, runtime_checkable

from merkledrop.crypto.merkle import indexed_leaf_hash, leaf_hash, process_proof
from merkledrop.entitlement.store import EntitlementStore
from merkledrop.errors import (
    AirdropError,
    AlreadyClaimed,
    ExceedsMaxClaimAmount,
    InvalidProof,
    Paused,
    ZeroAmount,
)
from merkledrop.models.airdrop import AirdropStorage, LeafScheme
from merkledrop.models.evm import normalize_address, require_uint256
from merkledrop.persistence.event_log import EventKind

Emitter = Callable[[EventKind, str, dict], None]


@runtime_checkable
class Minter(Protocol):
    """External minting capability.

    Either credits the full amount to the recipient or raises; partial
    issuance is not a possible outcome.
    """

    def mint(self, sender: str, to: str, amount: int) -> None:
        ...


class ClaimProcessor:
    """Validates and executes single claims against an entitlement store."""

    def __init__(
        self,
        storage: AirdropStorage,
        store: EntitlementStore,
        minter: Minter,
        contract_address: str,
        emit: Emitter,
    ) -> None:
        self._storage = storage
        self._store = store
        self._minter = minter
        self._contract_address = contract_address
        self._emit = emit

    def check(
        self,
        account: str,
        amount: int,
        proof: Sequence[bytes | str],
        index: Optional[int] = None,
    ) -> None:
        """Raise the first applicable claim failure, or return None."""
        account = normalize_address(account)
        require_uint256(amount, "amount")

        if self._storage.paused:
            raise Paused("Claims are paused")
        if self._store.already_claimed(account, index):
            raise AlreadyClaimed(f"Entitlement already claimed by {account}")
        if amount == 0:
            raise ZeroAmount("Claim amount must be greater than zero")
        maximum = self._storage.max_claim_amount
        if maximum is not None and amount > maximum:
            raise ExceedsMaxClaimAmount(amount, maximum)

        if self._store.leaf_scheme == LeafScheme.INDEXED:
            leaf = indexed_leaf_hash(index, account, amount)
        else:
            leaf = leaf_hash(account, amount)
        if process_proof(leaf, proof) != self._store.current_root():
            raise InvalidProof(f"Proof does not match the current root for {account}")

    def can_claim(
        self,
        account: str,
        amount: int,
        proof: Sequence[bytes | str],
        index: Optional[int] = None,
    ) -> bool:
        """Read-only eligibility pre-check."""
        try:
            self.check(account, amount, proof, index)
        except AirdropError:
            return False
        return True

    def claim(
        self,
        sender: str,
        amount: int,
        proof: Sequence[bytes | str],
        index: Optional[int] = None,
    ) -> None:
        """Redeem the sender's entitlement and mint it to them."""
        sender = normalize_address(sender)
        self.check(sender, amount, proof, index)

        prior_claimed = self._storage.claimed.get(sender)
        prior_bitmap = dict(self._storage.claimed_bitmap)
        prior_total = self._storage.total_claimed

        def _rollback() -> None:
            if prior_claimed is None:
                self._storage.claimed.pop(sender, None)
            else:
                self._storage.claimed[sender] = prior_claimed
            self._storage.claimed_bitmap = prior_bitmap
            self._storage.total_claimed = prior_total

        self._store.record_claim(sender, amount, index)
        try:
            self._minter.mint(self._contract_address, sender, amount)
        except Exception:
            _rollback()
            raise

        payload: dict = {"account": sender, "amount": amount}
        if self._store.leaf_scheme == LeafScheme.INDEXED:
            payload["index"] = index
        self._emit(EventKind.CLAIMED, sender, payload)
