#!/usr/bin/env python3
"""Merkledrop invariant checks against the airdrop policy file."""

import json
import sys
from pathlib import Path
from typing import Optional


ROOT = Path(__file__).resolve().parents[1]
POLICY_FILE = "airdrop_policy.json"

UINT256_MAX = 2**256 - 1
REQUIRED_PROFILES = ("fixed", "rotatable")
LEAF_SCHEMES = {"account", "indexed"}


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def check_profile(name: str, profile: dict, errors: list[str]) -> None:
    """Validate one deployment profile entry."""
    scheme = profile.get("leaf_scheme")
    if scheme not in LEAF_SCHEMES:
        errors.append(f"{name}.leaf_scheme must be one of {sorted(LEAF_SCHEMES)}, got {scheme!r}")

    if "max_claim_amount" not in profile:
        errors.append(f"{name}.max_claim_amount must be present (null for unbounded)")
        return
    bound = profile["max_claim_amount"]
    if bound is None:
        return
    # Amounts are decimal strings.
    if not isinstance(bound, str) or not bound.isdigit():
        errors.append(f"{name}.max_claim_amount must be a decimal string or null")
        return
    value = int(bound)
    if value == 0:
        errors.append(f"{name}.max_claim_amount must be > 0 (zero blocks every claim)")
    if value > UINT256_MAX:
        errors.append(f"{name}.max_claim_amount exceeds uint256")


def check(config_dir: Optional[Path] = None) -> int:
    policy_path = (config_dir or ROOT / "config") / POLICY_FILE
    if not policy_path.exists():
        print(f"Invariant check failed:\n- policy file not found: {policy_path}")
        return 1
    policy = load_json(policy_path)
    errors: list[str] = []

    if not str(policy.get("version", "")).strip():
        errors.append("version must be a non-empty string")

    # --- Profile invariants ---
    profiles = policy.get("profiles")
    if not isinstance(profiles, dict):
        errors.append("profiles section is missing")
        profiles = {}
    for name in REQUIRED_PROFILES:
        if name not in profiles:
            errors.append(f"Missing profile: {name}")
        else:
            check_profile(name, profiles[name], errors)
    for name in profiles:
        if name not in REQUIRED_PROFILES:
            errors.append(f"Unknown profile: {name}")

    if policy.get("default_profile") not in REQUIRED_PROFILES:
        errors.append(f"default_profile must be one of {list(REQUIRED_PROFILES)}")

    # Fixed profile is always bounded.
    fixed = profiles.get("fixed", {})
    if isinstance(fixed, dict) and "max_claim_amount" in fixed and fixed["max_claim_amount"] is None:
        errors.append("fixed profile must carry a max_claim_amount")

    if errors:
        print("Invariant check failed:")
        for err in errors:
            print(f"- {err}")
        return 1

    print("Invariant check passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(check())
