"""Airdrop service: unified facade over token, airdrop and persistence.

This is the primary interface for programmatic and CLI access. It wires
one MintableToken and one AirdropProxy onto a Chain, and:
- deploys both and grants the airdrop minting rights,
- runs claims and every guarded operation,
- converts contract failures into typed ServiceResult values,
- persists chain state after each committed operation.

Contract failures are never swallowed: every AirdropError or ValueError
becomes a failed ServiceResult carrying the message and the error name.
The event log is written by the chain when an operation commits, before
state is persisted; a persistence failure after that point is reported
as a warning and flips ``persistence_degraded`` instead of rolling back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from merkledrop.errors import AirdropError
from merkledrop.models.airdrop import DropProfile, LeafScheme, Role
from merkledrop.models.evm import hash_hex, normalize_address, to_hash32
from merkledrop.persistence.event_log import EventLog
from merkledrop.persistence.state_store import StateStore
from merkledrop.policy.resolver import PolicyResolver
from merkledrop.runtime.chain import Chain
from merkledrop.runtime.proxy import LOGIC_REGISTRY, AirdropProxy
from merkledrop.token.mintable import MintableToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


class AirdropService:
    """Airdrop facade.

    Usage:
        service = AirdropService(PolicyResolver.from_config_dir(config_dir))
        service.deploy(deployer, distribution.root)
        service.claim(account, amount, proof)
        service.pause(pauser)

    Persistence (optional):
        service = AirdropService(resolver, event_log=log, state_store=store)
        # State is persisted after each committed operation and reloaded
        # on construction.
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
    ) -> None:
        self._resolver = resolver
        self._chain = Chain(event_log)
        self._state_store = state_store
        self._token: Optional[MintableToken] = None
        self._airdrop: Optional[AirdropProxy] = None
        self._persistence_degraded = False

        if state_store is not None:
            for contract in state_store.load_chain(self._chain):
                if isinstance(contract, MintableToken) and self._token is None:
                    self._token = contract
                elif isinstance(contract, AirdropProxy) and self._airdrop is None:
                    self._airdrop = contract

    @property
    def chain(self) -> Chain:
        return self._chain

    @property
    def event_log(self) -> EventLog:
        return self._chain.event_log

    @property
    def token(self) -> Optional[MintableToken]:
        return self._token

    @property
    def airdrop(self) -> Optional[AirdropProxy]:
        return self._airdrop

    # ------------------------------------------------------------------
    # Deployment
    # ------------------------------------------------------------------

    def deploy(
        self,
        deployer: str,
        root: bytes | str,
        profile: Optional[DropProfile] = None,
        admin: Optional[str] = None,
        max_claim_amount: Optional[int] = None,
        leaf_scheme: Optional[LeafScheme] = None,
    ) -> ServiceResult:
        """Deploy the token and airdrop, then grant the airdrop MINTER_ROLE."""
        if self._airdrop is not None:
            return ServiceResult(
                success=False,
                errors=[f"Airdrop already deployed at {self._airdrop.address}"],
            )
        defaults = self._resolver.profile_defaults(profile)
        try:
            root = to_hash32(root)
            deployer = normalize_address(deployer)
            token = MintableToken.deploy(self._chain, deployer)
            airdrop = AirdropProxy.deploy(
                self._chain,
                deployer,
                token.address,
                root,
                profile=defaults.profile,
                admin=admin,
                max_claim_amount=(
                    max_claim_amount if max_claim_amount is not None
                    else defaults.max_claim_amount
                ),
                leaf_scheme=leaf_scheme or defaults.leaf_scheme,
            )
            token.grant_role(deployer, Role.MINTER, airdrop.address)
        except (AirdropError, ValueError) as e:
            return _failure(e)

        self._token, self._airdrop = token, airdrop
        data: dict[str, Any] = {
            "token": token.address,
            "airdrop": airdrop.address,
            "profile": airdrop.profile.value,
            "root": hash_hex(airdrop.merkle_root()),
        }
        return self._committed(data)

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def claim(
        self,
        account: str,
        amount: int,
        proof: Sequence[bytes | str],
        index: Optional[int] = None,
    ) -> ServiceResult:
        def _do(airdrop: AirdropProxy) -> dict[str, Any]:
            airdrop.claim(account, amount, proof, index)
            logger.info("Claim accepted: %s received %d", account, amount)
            return {
                "account": normalize_address(account),
                "amount": amount,
                "total_claimed": airdrop.total_claimed(),
            }
        return self._run("claim", _do)

    def can_claim(
        self,
        account: str,
        amount: int,
        proof: Sequence[bytes | str],
        index: Optional[int] = None,
    ) -> ServiceResult:
        airdrop = self._airdrop
        if airdrop is None:
            return _not_deployed()
        try:
            eligible = airdrop.can_claim(account, amount, proof, index)
        except ValueError as e:
            return _failure(e)
        return ServiceResult(success=True, data={"eligible": eligible})

    # ------------------------------------------------------------------
    # Guarded operations
    # ------------------------------------------------------------------

    def set_root(self, sender: str, new_root: bytes | str) -> ServiceResult:
        def _do(airdrop: AirdropProxy) -> dict[str, Any]:
            airdrop.set_root(sender, new_root)
            root = hash_hex(airdrop.merkle_root())
            logger.info("Merkle root rotated to %s by %s", root, sender)
            return {"root": root}
        return self._run("set_root", _do)

    def pause(self, sender: str) -> ServiceResult:
        def _do(airdrop: AirdropProxy) -> dict[str, Any]:
            airdrop.pause(sender)
            logger.info("Claims paused by %s", sender)
            return {"paused": True}
        return self._run("pause", _do)

    def unpause(self, sender: str) -> ServiceResult:
        def _do(airdrop: AirdropProxy) -> dict[str, Any]:
            airdrop.unpause(sender)
            logger.info("Claims unpaused by %s", sender)
            return {"paused": False}
        return self._run("unpause", _do)

    def set_max_claim_amount(self, sender: str, value: int) -> ServiceResult:
        def _do(airdrop: AirdropProxy) -> dict[str, Any]:
            old = airdrop.max_claim_amount()
            airdrop.set_max_claim_amount(sender, value)
            logger.info("Max claim amount %s -> %d", old, value)
            return {"old": old, "new": value}
        return self._run("set_max_claim_amount", _do)

    def emergency_withdraw(self, sender: str, amount: int) -> ServiceResult:
        def _do(airdrop: AirdropProxy) -> dict[str, Any]:
            withdrawn = airdrop.emergency_withdraw(sender, amount)
            logger.info("Emergency withdraw of %d (requested %d) by %s", withdrawn, amount, sender)
            return {"withdrawn": withdrawn, "requested": amount}
        return self._run("emergency_withdraw", _do)

    def grant_role(self, sender: str, role: Role, account: str) -> ServiceResult:
        def _do(airdrop: AirdropProxy) -> dict[str, Any]:
            changed = airdrop.grant_role(sender, role, account)
            return {"role": role.value, "account": normalize_address(account), "changed": changed}
        return self._run("grant_role", _do)

    def revoke_role(self, sender: str, role: Role, account: str) -> ServiceResult:
        def _do(airdrop: AirdropProxy) -> dict[str, Any]:
            changed = airdrop.revoke_role(sender, role, account)
            return {"role": role.value, "account": normalize_address(account), "changed": changed}
        return self._run("revoke_role", _do)

    def upgrade(self, sender: str, version: str) -> ServiceResult:
        implementation = LOGIC_REGISTRY.get(version)
        if implementation is None:
            return ServiceResult(success=False, errors=[f"Unknown logic version: {version}"])

        def _do(airdrop: AirdropProxy) -> dict[str, Any]:
            airdrop.upgrade_to(sender, implementation)
            return {"implementation": implementation.VERSION}
        return self._run("upgrade", _do)

    def fund(self, sender: str, amount: int) -> ServiceResult:
        """Mint tokens straight to the airdrop (recoverable via emergency withdraw)."""
        def _do(airdrop: AirdropProxy) -> dict[str, Any]:
            assert self._token is not None
            self._token.mint(sender, airdrop.address, amount)
            return {"balance": self._token.balance_of(airdrop.address)}
        return self._run("fund", _do)

    # ------------------------------------------------------------------
    # Status and queries
    # ------------------------------------------------------------------

    def balance_of(self, account: str) -> int:
        return self._token.balance_of(account) if self._token is not None else 0

    def status(self) -> dict[str, Any]:
        """Return the public state surface of the deployment."""
        airdrop = self._airdrop
        if airdrop is None or self._token is None:
            return {
                "deployed": False,
                "events": self.event_log.count,
                "persistence_degraded": self._persistence_degraded,
            }
        max_amount = airdrop.max_claim_amount()
        return {
            "deployed": True,
            "policy_version": self._resolver.version,
            "airdrop": {
                "address": airdrop.address,
                "profile": airdrop.profile.value,
                "leaf_scheme": airdrop.storage.leaf_scheme.value,
                "implementation": airdrop.implementation.VERSION,
                "root": hash_hex(airdrop.merkle_root()),
                "paused": airdrop.is_paused(),
                "max_claim_amount": None if max_amount is None else str(max_amount),
                "total_claimed": str(airdrop.total_claimed()),
                "claimants": len([a for a, done in airdrop.storage.claimed.items() if done]),
                "roles": {
                    role.value: sorted(airdrop.role_members(role))
                    for role in Role
                    if airdrop.role_members(role)
                },
            },
            "token": {
                "address": self._token.address,
                "symbol": MintableToken.SYMBOL,
                "total_supply": str(self._token.total_supply()),
                "airdrop_balance": str(self._token.balance_of(airdrop.address)),
            },
            "events": self.event_log.count,
            "persistence_degraded": self._persistence_degraded,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _run(
        self,
        action: str,
        operation: Callable[[AirdropProxy], dict[str, Any]],
    ) -> ServiceResult:
        airdrop = self._airdrop
        if airdrop is None:
            return _not_deployed()
        try:
            data = operation(airdrop)
        except (AirdropError, ValueError) as e:
            logger.warning("%s rejected: %s: %s", action, type(e).__name__, e)
            return _failure(e)
        return self._committed(data)

    def _committed(self, data: dict[str, Any]) -> ServiceResult:
        warning = self._safe_persist_post_audit()
        if warning:
            data["warning"] = warning
        return ServiceResult(success=True, data=data)

    def _persist_state(self) -> None:
        """Persist chain state to the state store (if wired)."""
        if self._state_store is None:
            return
        contracts = [c for c in (self._token, self._airdrop) if c is not None]
        self._state_store.save_chain(self._chain, contracts)

    def _safe_persist_post_audit(self) -> Optional[str]:
        """Persist state after events have been committed.

        MUST NOT roll back in-memory state: the event log already
        records the operation. On failure the state file is stale, the
        degraded flag is set and a warning string is returned.
        """
        try:
            self._persist_state()
            return None
        except OSError as e:
            self._persistence_degraded = True
            logger.error("State persistence failed: %s", e)
            return f"Persistence degraded: {e}; operation committed in event log but state file is stale"


def _failure(error: Exception) -> ServiceResult:
    return ServiceResult(
        success=False,
        errors=[str(error) or type(error).__name__],
        data={"error": type(error).__name__},
    )


def _not_deployed() -> ServiceResult:
    return ServiceResult(success=False, errors=["No airdrop deployed"])
