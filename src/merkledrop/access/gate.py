"""Access gate: role table and the single guard used by privileged operations.

Each contract composes its own gate. The gate owns no storage: it reads
and writes the role table it is given, which lives in the contract's
persistent storage and therefore survives logic upgrades and is covered
by transaction rollback.

Rules:
- DEFAULT_ADMIN_ROLE administers every role.
- A role may additionally name an administering role (role_admins);
  holders of that role may grant and revoke it.
- Any account may renounce a role it holds, for itself only.
- Grant/revoke emit an event only when membership actually changes.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable, Mapping, Optional, Set

from merkledrop.errors import Unauthorized
from merkledrop.models.airdrop import Role
from merkledrop.models.evm import normalize_address
from merkledrop.persistence.event_log import EventKind

Emitter = Callable[[EventKind, str, dict], None]


class AccessGate:
    """Role-to-principal authorization table.

    Usage:
        gate = AccessGate(storage.roles, role_admins={Role.PAUSER: Role.ADMIN})
        gate.require(Role.ADMIN, sender)
        gate.grant_role(sender, Role.PAUSER, account)
    """

    def __init__(
        self,
        table: Dict[str, Set[str]],
        role_admins: Optional[Mapping[Role, Role]] = None,
        emit: Optional[Emitter] = None,
    ) -> None:
        self._table = table
        self._role_admins = dict(role_admins or {})
        self._emit = emit

    def has_role(self, role: Role, account: str) -> bool:
        return normalize_address(account) in self._table.get(role.value, set())

    def require(self, role: Role, account: str) -> None:
        """Raise Unauthorized unless the account holds the role."""
        if not self.has_role(role, account):
            raise Unauthorized(normalize_address(account), role.value)

    def get_role_admin(self, role: Role) -> Role:
        return self._role_admins.get(role, Role.DEFAULT_ADMIN)

    def can_manage(self, sender: str, role: Role) -> bool:
        return self.has_role(Role.DEFAULT_ADMIN, sender) or self.has_role(
            self.get_role_admin(role), sender
        )

    def members(self, role: Role) -> frozenset[str]:
        return frozenset(self._table.get(role.value, set()))

    def grant_role(self, sender: str, role: Role, account: str) -> bool:
        """Grant a role. Returns True if membership changed."""
        if not self.can_manage(sender, role):
            raise Unauthorized(normalize_address(sender), self.get_role_admin(role).value)
        return self.bootstrap(role, account, sender)

    def revoke_role(self, sender: str, role: Role, account: str) -> bool:
        """Revoke a role. Returns True if membership changed."""
        if not self.can_manage(sender, role):
            raise Unauthorized(normalize_address(sender), self.get_role_admin(role).value)
        return self._revoke(role, account, sender)

    def renounce_role(self, sender: str, role: Role) -> bool:
        """Drop a role the sender holds. Returns True if membership changed."""
        return self._revoke(role, sender, sender)

    def bootstrap(self, role: Role, account: str, sender: str) -> bool:
        """Unguarded grant used by constructors and initializers."""
        canonical = normalize_address(account)
        members = self._table.setdefault(role.value, set())
        if canonical in members:
            return False
        members.add(canonical)
        if self._emit is not None:
            self._emit(
                EventKind.ROLE_GRANTED,
                normalize_address(sender),
                {"role": role.value, "account": canonical},
            )
        return True

    def bootstrap_all(self, roles: Iterable[Role], account: str, sender: str) -> None:
        for role in roles:
            self.bootstrap(role, account, sender)

    def _revoke(self, role: Role, account: str, sender: str) -> bool:
        canonical = normalize_address(account)
        members = self._table.get(role.value, set())
        if canonical not in members:
            return False
        members.discard(canonical)
        if self._emit is not None:
            self._emit(
                EventKind.ROLE_REVOKED,
                normalize_address(sender),
                {"role": role.value, "account": canonical},
            )
        return True
