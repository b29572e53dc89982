"""Upgradeable airdrop: stable address and storage, swappable logic.

The proxy owns the address and the AirdropStorage record. Every call is
dispatched to a freshly bound instance of the current logic class, so
logic carries no state of its own and replacing it (upgrade_to) leaves
root, claim records, totals and roles exactly as they were. Only the
current logic can authorize its own replacement.

Both deployment profiles sit behind the same proxy and the same claim
validation; the fixed profile simply refuses root rotation and upgrade.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Sequence, Type

from merkledrop.access.gate import AccessGate
from merkledrop.entitlement.processor import ClaimProcessor, Minter
from merkledrop.entitlement.store import EntitlementStore
from merkledrop.errors import AlreadyInitialized, ImmutableConfiguration, NotPaused, Paused
from merkledrop.models.airdrop import (
    DEFAULT_MAX_CLAIM_AMOUNT,
    PROFILE_RULES,
    AirdropStorage,
    DropProfile,
    LeafScheme,
    ProfileRules,
    Role,
)
from merkledrop.models.evm import hash_hex, normalize_address, require_uint256, to_hash32
from merkledrop.persistence.event_log import EventKind
from merkledrop.runtime.chain import Chain

logger = logging.getLogger(__name__)


class AirdropLogic:
    """Airdrop logic bound to one storage record for one call."""

    VERSION = "airdrop-v1"

    def __init__(self, chain: Chain, address: str, storage: AirdropStorage) -> None:
        self._chain = chain
        self._address = address
        self._storage = storage
        self._rules: ProfileRules = PROFILE_RULES[storage.profile]
        self.gate = AccessGate(storage.roles, self._rules.role_admins, emit=self._emit)
        self.store = EntitlementStore(storage, self.gate, self._rules.admin_role, self._emit)

    @property
    def rules(self) -> ProfileRules:
        return self._rules

    def processor(self) -> ClaimProcessor:
        return ClaimProcessor(
            self._storage, self.store, self._token(), self._address, self._emit,
        )

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def initialize(
        self,
        sender: str,
        token: str,
        root: bytes | str,
        admin: str,
        max_claim_amount: Optional[int] = None,
    ) -> None:
        """One-shot setup: token, root, claim bound and bootstrap roles."""
        if self._storage.initialized:
            raise AlreadyInitialized("Airdrop already initialized")
        self._storage.initialized = True
        self._storage.token = normalize_address(token)
        self._storage.merkle_root = to_hash32(root)
        if max_claim_amount is not None:
            self._storage.max_claim_amount = require_uint256(max_claim_amount, "max_claim_amount")
        self.gate.bootstrap_all(self._rules.bootstrap_roles, admin, sender)
        self._emit(EventKind.INITIALIZED, normalize_address(sender), {
            "token": self._storage.token,
            "root": hash_hex(self._storage.merkle_root),
            "admin": normalize_address(admin),
            "profile": self._storage.profile.value,
            "version": self.VERSION,
        })

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def claim(
        self,
        sender: str,
        amount: int,
        proof: Sequence[bytes | str],
        index: Optional[int] = None,
    ) -> None:
        self.processor().claim(sender, amount, proof, index)

    def can_claim(
        self,
        account: str,
        amount: int,
        proof: Sequence[bytes | str],
        index: Optional[int] = None,
    ) -> bool:
        return self.processor().can_claim(account, amount, proof, index)

    # ------------------------------------------------------------------
    # Guarded operations
    # ------------------------------------------------------------------

    def set_root(self, sender: str, new_root: bytes | str) -> None:
        self.store.set_root(sender, new_root)

    def pause(self, sender: str) -> None:
        self.gate.require(self._rules.pause_role, sender)
        if self._storage.paused:
            raise Paused("Claims are already paused")
        self._storage.paused = True
        account = normalize_address(sender)
        self._emit(EventKind.PAUSED, account, {"account": account})

    def unpause(self, sender: str) -> None:
        self.gate.require(self._rules.pause_role, sender)
        if not self._storage.paused:
            raise NotPaused("Claims are not paused")
        self._storage.paused = False
        account = normalize_address(sender)
        self._emit(EventKind.UNPAUSED, account, {"account": account})

    def set_max_claim_amount(self, sender: str, value: int) -> None:
        self.gate.require(self._rules.admin_role, sender)
        old = self._storage.max_claim_amount
        self._storage.max_claim_amount = require_uint256(value, "max_claim_amount")
        self._emit(EventKind.MAX_CLAIM_AMOUNT_UPDATED, normalize_address(sender), {
            "old": old,
            "new": value,
        })

    def emergency_withdraw(self, sender: str, amount: int) -> int:
        """Send up to `amount` of the airdrop's own tokens to the caller.

        Over-large requests are clamped to the balance held, never
        rejected. Returns the amount actually sent.
        """
        self.gate.require(self._rules.admin_role, sender)
        require_uint256(amount, "amount")
        token = self._token()
        withdrawn = min(amount, token.balance_of(self._address))
        recipient = normalize_address(sender)
        if withdrawn > 0:
            token.transfer(self._address, recipient, withdrawn)
        self._emit(EventKind.EMERGENCY_WITHDRAW, recipient, {
            "to": recipient,
            "amount": withdrawn,
            "requested": amount,
        })
        return withdrawn

    def authorize_upgrade(self, sender: str) -> None:
        if not self._rules.upgradeable:
            raise ImmutableConfiguration("Airdrop logic is not upgradeable")
        self.gate.require(self._rules.admin_role, sender)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _token(self) -> Minter:
        if self._storage.token is None:
            raise RuntimeError("Airdrop has no token configured")
        return self._chain.contract(self._storage.token)  # type: ignore[return-value]

    def _emit(self, kind: EventKind, actor_id: str, payload: dict) -> None:
        self._chain.emit(self._address, kind, actor_id, payload)


LOGIC_REGISTRY: Dict[str, Type[AirdropLogic]] = {AirdropLogic.VERSION: AirdropLogic}


def register_logic(logic_cls: Type[AirdropLogic]) -> Type[AirdropLogic]:
    """Make a logic version resolvable when state is reloaded."""
    LOGIC_REGISTRY[logic_cls.VERSION] = logic_cls
    return logic_cls


class AirdropProxy:
    """Stable airdrop identity: address + storage + current logic.

    Usage:
        airdrop = AirdropProxy.deploy(chain, deployer, token.address, root,
                                      profile=DropProfile.ROTATABLE)
        token.grant_role(deployer, Role.MINTER, airdrop.address)
        airdrop.claim(account, amount, proof)
    """

    def __init__(
        self,
        chain: Chain,
        address: str,
        storage: AirdropStorage,
        implementation: Type[AirdropLogic] = AirdropLogic,
    ) -> None:
        self._chain = chain
        self._address = normalize_address(address)
        self._storage = storage
        self._implementation = implementation

    @classmethod
    def deploy(
        cls,
        chain: Chain,
        deployer: str,
        token: str,
        root: bytes | str,
        profile: DropProfile = DropProfile.FIXED,
        admin: Optional[str] = None,
        max_claim_amount: Optional[int] = None,
        leaf_scheme: LeafScheme = LeafScheme.ACCOUNT,
        implementation: Type[AirdropLogic] = AirdropLogic,
    ) -> AirdropProxy:
        """Deploy and initialize in one step.

        The fixed profile defaults to DEFAULT_MAX_CLAIM_AMOUNT and grants
        the deployer every bootstrap role; the rotatable profile is
        unbounded unless a maximum is given and bootstraps `admin`.
        """
        deployer = normalize_address(deployer)
        if max_claim_amount is None and profile == DropProfile.FIXED:
            max_claim_amount = DEFAULT_MAX_CLAIM_AMOUNT
        proxy = cls(
            chain,
            chain.next_address(deployer),
            AirdropStorage(profile=profile, leaf_scheme=leaf_scheme),
            implementation,
        )
        with chain.transaction():
            proxy._logic().initialize(
                deployer, token, root, admin or deployer, max_claim_amount,
            )
        chain.register(proxy)
        logger.info(
            "Deployed %s airdrop %s (token %s, root %s)",
            profile.value, proxy.address, token, hash_hex(proxy.merkle_root()),
        )
        return proxy

    @property
    def address(self) -> str:
        return self._address

    @property
    def storage(self) -> AirdropStorage:
        return self._storage

    @property
    def implementation(self) -> Type[AirdropLogic]:
        return self._implementation

    @property
    def profile(self) -> DropProfile:
        return self._storage.profile

    def snapshot(self) -> tuple[AirdropStorage, Type[AirdropLogic]]:
        return self._storage.snapshot(), self._implementation

    def restore(self, snapshot: tuple[AirdropStorage, Type[AirdropLogic]]) -> None:
        storage, implementation = snapshot
        self._storage.restore(storage)
        self._implementation = implementation

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def merkle_root(self) -> bytes:
        return self._logic().store.current_root()

    def token(self) -> Optional[str]:
        return self._storage.token

    def has_claimed(self, account: str) -> bool:
        return self._logic().store.has_claimed(account)

    def is_claimed(self, index: int) -> bool:
        return self._logic().store.is_claimed(index)

    def total_claimed(self) -> int:
        return self._logic().store.total_claimed()

    def is_paused(self) -> bool:
        return self._storage.paused

    def max_claim_amount(self) -> Optional[int]:
        return self._storage.max_claim_amount

    def has_role(self, role: Role, account: str) -> bool:
        return self._logic().gate.has_role(role, account)

    def get_role_admin(self, role: Role) -> Role:
        return self._logic().gate.get_role_admin(role)

    def role_members(self, role: Role) -> frozenset[str]:
        return self._logic().gate.members(role)

    def can_claim(
        self,
        account: str,
        amount: int,
        proof: Sequence[bytes | str],
        index: Optional[int] = None,
    ) -> bool:
        return self._logic().can_claim(account, amount, proof, index)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def initialize(
        self,
        sender: str,
        token: str,
        root: bytes | str,
        admin: str,
        max_claim_amount: Optional[int] = None,
    ) -> None:
        with self._chain.transaction():
            self._logic().initialize(sender, token, root, admin, max_claim_amount)

    def claim(
        self,
        sender: str,
        amount: int,
        proof: Sequence[bytes | str],
        index: Optional[int] = None,
    ) -> None:
        with self._chain.transaction():
            self._logic().claim(sender, amount, proof, index)

    def set_root(self, sender: str, new_root: bytes | str) -> None:
        with self._chain.transaction():
            self._logic().set_root(sender, new_root)

    def pause(self, sender: str) -> None:
        with self._chain.transaction():
            self._logic().pause(sender)

    def unpause(self, sender: str) -> None:
        with self._chain.transaction():
            self._logic().unpause(sender)

    def set_max_claim_amount(self, sender: str, value: int) -> None:
        with self._chain.transaction():
            self._logic().set_max_claim_amount(sender, value)

    def emergency_withdraw(self, sender: str, amount: int) -> int:
        with self._chain.transaction():
            return self._logic().emergency_withdraw(sender, amount)

    def grant_role(self, sender: str, role: Role, account: str) -> bool:
        with self._chain.transaction():
            return self._logic().gate.grant_role(sender, role, account)

    def revoke_role(self, sender: str, role: Role, account: str) -> bool:
        with self._chain.transaction():
            return self._logic().gate.revoke_role(sender, role, account)

    def renounce_role(self, sender: str, role: Role) -> bool:
        with self._chain.transaction():
            return self._logic().gate.renounce_role(sender, role)

    def upgrade_to(self, sender: str, implementation: Type[AirdropLogic]) -> None:
        """Swap the logic class; storage is untouched."""
        with self._chain.transaction():
            self._logic().authorize_upgrade(sender)
            previous = self._implementation
            self._implementation = implementation
            self._chain.emit(self._address, EventKind.UPGRADED, normalize_address(sender), {
                "implementation": implementation.VERSION,
                "previous": previous.VERSION,
            })
        logger.info("Airdrop %s upgraded to %s", self._address, implementation.VERSION)

    def _logic(self) -> AirdropLogic:
        return self._implementation(self._chain, self._address, self._storage)
