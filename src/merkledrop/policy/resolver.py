"""Policy resolver: deployment defaults loaded from the config directory.

Reads ``airdrop_policy.json`` and answers per-profile questions (leaf
scheme, per-claim bound). Loading is fail-closed: a missing profile,
unknown scheme or malformed bound raises ValueError at load time rather
than surfacing later as a mis-configured deployment.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from merkledrop.models.airdrop import DropProfile, LeafScheme
from merkledrop.models.evm import require_uint256

POLICY_FILE = "airdrop_policy.json"


@dataclass(frozen=True)
class ProfileDefaults:
    """Deployment defaults for one profile."""
    profile: DropProfile
    leaf_scheme: LeafScheme
    max_claim_amount: Optional[int]


class PolicyResolver:
    """Resolves deployment defaults from a parsed policy document.

    Usage:
        resolver = PolicyResolver.from_config_dir(Path("config"))
        defaults = resolver.profile_defaults(DropProfile.FIXED)
    """

    def __init__(self, policy: Dict[str, Any]) -> None:
        self._policy = policy
        self._profiles = self._parse_profiles(policy)
        try:
            self._default_profile = DropProfile(policy["default_profile"])
        except (KeyError, ValueError) as e:
            raise ValueError(f"Invalid default_profile in policy: {e}") from e

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        path = config_dir / POLICY_FILE
        if not path.exists():
            raise ValueError(f"Policy file not found: {path}")
        with path.open("r", encoding="utf-8") as f:
            return cls(json.load(f))

    @classmethod
    def defaults(cls) -> PolicyResolver:
        """Built-in policy used when no config directory is available."""
        return cls({
            "version": "0.1.0",
            "default_profile": DropProfile.FIXED.value,
            "profiles": {
                DropProfile.FIXED.value: {
                    "leaf_scheme": LeafScheme.ACCOUNT.value,
                    "max_claim_amount": str(1000 * 10**18),
                },
                DropProfile.ROTATABLE.value: {
                    "leaf_scheme": LeafScheme.ACCOUNT.value,
                    "max_claim_amount": None,
                },
            },
        })

    @property
    def version(self) -> str:
        return str(self._policy.get("version", "unknown"))

    def default_profile(self) -> DropProfile:
        return self._default_profile

    def profile_defaults(self, profile: Optional[DropProfile] = None) -> ProfileDefaults:
        return self._profiles[profile or self._default_profile]

    @staticmethod
    def _parse_profiles(policy: Dict[str, Any]) -> Dict[DropProfile, ProfileDefaults]:
        raw = policy.get("profiles")
        if not isinstance(raw, dict):
            raise ValueError("Policy is missing the 'profiles' section")

        parsed: Dict[DropProfile, ProfileDefaults] = {}
        for profile in DropProfile:
            entry = raw.get(profile.value)
            if entry is None:
                raise ValueError(f"Policy is missing profile: {profile.value}")
            try:
                scheme = LeafScheme(entry["leaf_scheme"])
            except (KeyError, ValueError) as e:
                raise ValueError(f"{profile.value}: invalid leaf_scheme: {e}") from e

            bound = entry.get("max_claim_amount")
            max_amount: Optional[int] = None
            if bound is not None:
                if not str(bound).isdigit():
                    raise ValueError(f"{profile.value}: max_claim_amount must be an integer string")
                max_amount = require_uint256(int(bound), "max_claim_amount")

            parsed[profile] = ProfileDefaults(
                profile=profile,
                leaf_scheme=scheme,
                max_claim_amount=max_amount,
            )
        return parsed
