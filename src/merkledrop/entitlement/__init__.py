"""Entitlement store and claim processor."""

from merkledrop.entitlement.processor import ClaimProcessor, Minter
from merkledrop.entitlement.store import EntitlementStore

__all__ = ["ClaimProcessor", "EntitlementStore", "Minter"]
