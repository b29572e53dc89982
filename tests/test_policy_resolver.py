"""Tests for the policy resolver: it loads and validates deployment defaults."""

import json
from pathlib import Path

import pytest

from merkledrop.models.airdrop import DEFAULT_MAX_CLAIM_AMOUNT, DropProfile, LeafScheme
from merkledrop.policy.resolver import POLICY_FILE, PolicyResolver


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


@pytest.fixture
def resolver() -> PolicyResolver:
    return PolicyResolver.from_config_dir(CONFIG_DIR)


def _policy(**overrides) -> dict:
    policy = {
        "version": "test",
        "default_profile": "rotatable",
        "profiles": {
            "fixed": {"leaf_scheme": "account", "max_claim_amount": "10"},
            "rotatable": {"leaf_scheme": "indexed", "max_claim_amount": None},
        },
    }
    policy.update(overrides)
    return policy


class TestShippedPolicy:
    def test_default_profile_is_fixed(self, resolver: PolicyResolver) -> None:
        assert resolver.default_profile() == DropProfile.FIXED

    def test_fixed_bound(self, resolver: PolicyResolver) -> None:
        defaults = resolver.profile_defaults(DropProfile.FIXED)
        assert defaults.max_claim_amount == DEFAULT_MAX_CLAIM_AMOUNT
        assert defaults.leaf_scheme == LeafScheme.ACCOUNT

    def test_rotatable_unbounded(self, resolver: PolicyResolver) -> None:
        assert resolver.profile_defaults(DropProfile.ROTATABLE).max_claim_amount is None

    def test_builtin_matches_shipped(self, resolver: PolicyResolver) -> None:
        builtin = PolicyResolver.defaults()
        for profile in DropProfile:
            assert builtin.profile_defaults(profile) == resolver.profile_defaults(profile)


class TestValidation:
    def test_custom_policy(self) -> None:
        resolver = PolicyResolver(_policy())
        assert resolver.version == "test"
        defaults = resolver.profile_defaults()
        assert defaults.profile == DropProfile.ROTATABLE
        assert defaults.leaf_scheme == LeafScheme.INDEXED

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(ValueError, match="not found"):
            PolicyResolver.from_config_dir(tmp_path)

    def test_loads_from_dir(self, tmp_path) -> None:
        (tmp_path / POLICY_FILE).write_text(json.dumps(_policy()))
        assert PolicyResolver.from_config_dir(tmp_path).version == "test"

    def test_missing_profile(self) -> None:
        policy = _policy()
        del policy["profiles"]["fixed"]
        with pytest.raises(ValueError, match="fixed"):
            PolicyResolver(policy)

    def test_unknown_scheme(self) -> None:
        policy = _policy()
        policy["profiles"]["fixed"]["leaf_scheme"] = "sparse"
        with pytest.raises(ValueError):
            PolicyResolver(policy)

    def test_numeric_bound_rejected(self) -> None:
        policy = _policy()
        policy["profiles"]["fixed"]["max_claim_amount"] = "1e21"
        with pytest.raises(ValueError):
            PolicyResolver(policy)

    def test_bad_default_profile(self) -> None:
        with pytest.raises(ValueError):
            PolicyResolver(_policy(default_profile="mutable"))

    def test_missing_profiles_section(self) -> None:
        with pytest.raises(ValueError):
            PolicyResolver({"default_profile": "fixed"})
