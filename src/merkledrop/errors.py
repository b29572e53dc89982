"""Airdrop failure taxonomy.

Every failure is terminal for the operation that raised it: the runtime
restores all state touched by the call before the exception reaches the
caller. Malformed inputs (bad address, value outside uint256) raise
ValueError instead.
"""

from __future__ import annotations


class AirdropError(Exception):
    """Base class for all airdrop and token failures."""


class Unauthorized(AirdropError):
    """Raised when the caller lacks the role a guarded operation requires."""

    def __init__(self, account: str, role: str) -> None:
        super().__init__(f"Account {account} is missing role {role}")
        self.account = account
        self.role = role


class Paused(AirdropError):
    """Raised when claiming (or pausing again) while claims are paused."""


class NotPaused(AirdropError):
    """Raised when unpausing while claims are active."""


class AlreadyClaimed(AirdropError):
    """Raised when the entitlement has already been redeemed."""


class ZeroAmount(AirdropError):
    """Raised when a claim requests zero tokens."""


class ExceedsMaxClaimAmount(AirdropError):
    """Raised when a claim exceeds the configured per-claim bound."""

    def __init__(self, amount: int, maximum: int) -> None:
        super().__init__(f"Claim amount {amount} exceeds maximum {maximum}")
        self.amount = amount
        self.maximum = maximum


class InvalidProof(AirdropError):
    """Raised when the proof does not fold to the current root."""


class ImmutableConfiguration(AirdropError):
    """Raised when rotating the root or upgrading a fixed-profile airdrop."""


class AlreadyInitialized(AirdropError):
    """Raised on a second initialize() of an upgradeable airdrop."""


class InsufficientBalance(AirdropError):
    """Raised when a token transfer or burn exceeds the holder's balance."""

    def __init__(self, account: str, balance: int, needed: int) -> None:
        super().__init__(
            f"Account {account} has balance {balance}, needs {needed}"
        )
        self.account = account
        self.balance = balance
        self.needed = needed
