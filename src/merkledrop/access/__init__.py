"""Access gate: role-based authorization for privileged operations."""

from merkledrop.access.gate import AccessGate

__all__ = ["AccessGate"]
