"""Mintable token: the Minting capability the claim processor depends on.

A small fungible token: balances, total supply and a
MINTER role that gates issuance and burning. Every balance change emits
a transfer notification (zero address on the far side for mint/burn).
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Set

from merkledrop.access.gate import AccessGate
from merkledrop.errors import InsufficientBalance
from merkledrop.models.airdrop import Role
from merkledrop.models.evm import ZERO_ADDRESS, normalize_address, require_uint256
from merkledrop.persistence.event_log import EventKind
from merkledrop.runtime.chain import Chain


@dataclass
class TokenStorage:
    """Persistent token state."""
    balances: Dict[str, int] = field(default_factory=dict)
    total_supply: int = 0
    roles: Dict[str, Set[str]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "balances": {a: str(b) for a, b in sorted(self.balances.items()) if b},
            "total_supply": str(self.total_supply),
            "roles": {role: sorted(members) for role, members in self.roles.items()},
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> TokenStorage:
        return TokenStorage(
            balances={a: int(b) for a, b in data.get("balances", {}).items()},
            total_supply=int(data.get("total_supply", "0")),
            roles={role: set(m) for role, m in data.get("roles", {}).items()},
        )


class MintableToken:
    """Fungible token with role-gated minting.

    Usage:
        token = MintableToken.deploy(chain, deployer)
        token.grant_role(deployer, Role.MINTER, airdrop.address)
        token.mint(airdrop.address, recipient, 100)
    """

    NAME = "MyMintableToken"
    SYMBOL = "MMT"
    DECIMALS = 18

    def __init__(self, chain: Chain, address: str, storage: TokenStorage) -> None:
        self._chain = chain
        self._address = normalize_address(address)
        self._storage = storage

    @classmethod
    def deploy(cls, chain: Chain, deployer: str) -> MintableToken:
        """Deploy a token; the deployer gets DEFAULT_ADMIN and MINTER."""
        deployer = normalize_address(deployer)
        token = cls(chain, chain.next_address(deployer), TokenStorage())
        with chain.transaction():
            token._gate().bootstrap_all((Role.DEFAULT_ADMIN, Role.MINTER), deployer, deployer)
        chain.register(token)
        return token

    @property
    def address(self) -> str:
        return self._address

    @property
    def storage(self) -> TokenStorage:
        return self._storage

    def snapshot(self) -> TokenStorage:
        return copy.deepcopy(self._storage)

    def restore(self, snapshot: TokenStorage) -> None:
        self._storage = copy.deepcopy(snapshot)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def balance_of(self, account: str) -> int:
        return self._storage.balances.get(normalize_address(account), 0)

    def total_supply(self) -> int:
        return self._storage.total_supply

    def has_role(self, role: Role, account: str) -> bool:
        return self._gate().has_role(role, account)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def mint(self, sender: str, to: str, amount: int) -> None:
        """Issue new tokens. Caller must hold MINTER_ROLE."""
        with self._chain.transaction():
            self._gate().require(Role.MINTER, sender)
            supply = require_uint256(
                self._storage.total_supply + require_uint256(amount, "amount"), "total_supply"
            )
            self._credit(normalize_address(to), amount)
            self._storage.total_supply = supply
            self._emit(EventKind.TRANSFER, sender, ZERO_ADDRESS, to, amount)

    def burn(self, sender: str, holder: str, amount: int) -> None:
        """Destroy tokens held by an account. Caller must hold MINTER_ROLE."""
        with self._chain.transaction():
            self._gate().require(Role.MINTER, sender)
            self._debit(normalize_address(holder), require_uint256(amount, "amount"))
            self._storage.total_supply -= amount
            self._emit(EventKind.TRANSFER, sender, holder, ZERO_ADDRESS, amount)

    def transfer(self, sender: str, to: str, amount: int) -> None:
        """Move tokens from the sender to another account."""
        with self._chain.transaction():
            source = normalize_address(sender)
            self._debit(source, require_uint256(amount, "amount"))
            self._credit(normalize_address(to), amount)
            self._emit(EventKind.TRANSFER, source, source, to, amount)

    def grant_role(self, sender: str, role: Role, account: str) -> bool:
        with self._chain.transaction():
            return self._gate().grant_role(sender, role, account)

    def revoke_role(self, sender: str, role: Role, account: str) -> bool:
        with self._chain.transaction():
            return self._gate().revoke_role(sender, role, account)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _gate(self) -> AccessGate:
        return AccessGate(self._storage.roles, emit=self._emit_raw)

    def _credit(self, account: str, amount: int) -> None:
        self._storage.balances[account] = self._storage.balances.get(account, 0) + amount

    def _debit(self, account: str, amount: int) -> None:
        balance = self._storage.balances.get(account, 0)
        if balance < amount:
            raise InsufficientBalance(account, balance, amount)
        self._storage.balances[account] = balance - amount

    def _emit(self, kind: EventKind, sender: str, source: str, to: str, amount: int) -> None:
        self._emit_raw(kind, normalize_address(sender), {
            "from": normalize_address(source),
            "to": normalize_address(to),
            "amount": amount,
        })

    def _emit_raw(self, kind: EventKind, actor_id: str, payload: dict) -> None:
        self._chain.emit(self._address, kind, actor_id, payload)
