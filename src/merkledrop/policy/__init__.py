"""Policy: deployment defaults from the config directory."""

from merkledrop.policy.resolver import PolicyResolver, ProfileDefaults

__all__ = ["PolicyResolver", "ProfileDefaults"]
