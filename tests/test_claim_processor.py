"""Tests for claim validation and execution.

Covers proof validity, tamper rejection, the validation order, pause
gating, the per-claim bound, atomic rollback when minting fails, the
indexed leaf scheme and the behaviour of claim records across root
rotation.
"""

import pytest

from merkledrop.access.gate import AccessGate
from merkledrop.crypto.distribution import Distribution
from merkledrop.entitlement.processor import ClaimProcessor
from merkledrop.entitlement.store import EntitlementStore
from merkledrop.errors import (
    AlreadyClaimed,
    ExceedsMaxClaimAmount,
    InvalidProof,
    Paused,
    ZeroAmount,
)
from merkledrop.models.airdrop import AirdropStorage, DropProfile, LeafScheme, Role
from merkledrop.models.evm import UINT256_MAX
from merkledrop.persistence.event_log import EventKind
from merkledrop.runtime.chain import Chain
from merkledrop.runtime.proxy import AirdropProxy
from merkledrop.token.mintable import MintableToken


OWNER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
ALICE = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
BOB = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"
CAROL = "0x90F79bf6EB2c4f870365E785982E1f101E93b906"
MALLORY = "0x15d34AAf54267DB7D7c367839AAf71A00a2C6A65"
AIRDROP_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"

ONE = 10**18


def _deploy(
    chain: Chain,
    distribution: Distribution,
    profile: DropProfile = DropProfile.FIXED,
    token_cls: type = MintableToken,
    **kwargs,
) -> tuple[MintableToken, AirdropProxy]:
    token = token_cls.deploy(chain, OWNER)
    airdrop = AirdropProxy.deploy(
        chain, OWNER, token.address, distribution.root,
        profile=profile, leaf_scheme=distribution.scheme, **kwargs,
    )
    token.grant_role(OWNER, Role.MINTER, airdrop.address)
    return token, airdrop


def _claimed_events(chain: Chain) -> list:
    return [e.payload for e in chain.event_log.events(EventKind.CLAIMED)]


@pytest.fixture
def chain() -> Chain:
    return Chain()


@pytest.fixture
def distribution() -> Distribution:
    return Distribution.build([
        (ALICE, 100 * ONE),
        (BOB, 200 * ONE),
        (CAROL, 300 * ONE),
    ])


@pytest.fixture
def deployed(chain: Chain, distribution: Distribution) -> tuple[MintableToken, AirdropProxy]:
    return _deploy(chain, distribution)


class TestProofValidity:
    def test_claim_succeeds_once(self, chain: Chain, distribution: Distribution, deployed) -> None:
        token, airdrop = deployed
        alice = distribution.recipient(ALICE)

        assert airdrop.can_claim(ALICE, alice.amount, alice.proof)
        airdrop.claim(ALICE, alice.amount, alice.proof)

        assert token.balance_of(ALICE) == 100 * ONE
        assert airdrop.has_claimed(ALICE)
        assert airdrop.total_claimed() == 100 * ONE
        assert not airdrop.can_claim(ALICE, alice.amount, alice.proof)
        with pytest.raises(AlreadyClaimed):
            airdrop.claim(ALICE, alice.amount, alice.proof)

    def test_claimed_event(self, chain: Chain, distribution: Distribution, deployed) -> None:
        _, airdrop = deployed
        bob = distribution.recipient(BOB)
        airdrop.claim(BOB, bob.amount, bob.proof)
        assert _claimed_events(chain) == [
            {"contract": airdrop.address, "account": BOB, "amount": 200 * ONE},
        ]

    def test_every_recipient_can_claim(self, distribution: Distribution, deployed) -> None:
        token, airdrop = deployed
        for r in distribution.recipients:
            airdrop.claim(r.account, r.amount, r.proof)
        assert airdrop.total_claimed() == distribution.token_total
        assert token.total_supply() == distribution.token_total

    def test_hex_proof_accepted(self, distribution: Distribution, deployed) -> None:
        _, airdrop = deployed
        carol = distribution.recipient(CAROL)
        airdrop.claim(CAROL, carol.amount, carol.to_dict()["proof"])
        assert airdrop.has_claimed(CAROL)


class TestTamperRejection:
    def test_wrong_amount(self, distribution: Distribution, deployed) -> None:
        _, airdrop = deployed
        alice = distribution.recipient(ALICE)
        with pytest.raises(InvalidProof):
            airdrop.claim(ALICE, alice.amount + 1, alice.proof)

    def test_wrong_address(self, distribution: Distribution, deployed) -> None:
        _, airdrop = deployed
        alice = distribution.recipient(ALICE)
        with pytest.raises(InvalidProof):
            airdrop.claim(MALLORY, alice.amount, alice.proof)

    def test_altered_proof_element(self, distribution: Distribution, deployed) -> None:
        _, airdrop = deployed
        alice = distribution.recipient(ALICE)
        proof = list(alice.proof)
        proof[-1] = bytes(31) + b"\x01"
        with pytest.raises(InvalidProof):
            airdrop.claim(ALICE, alice.amount, proof)

    def test_empty_proof(self, distribution: Distribution, deployed) -> None:
        _, airdrop = deployed
        with pytest.raises(InvalidProof):
            airdrop.claim(ALICE, 100 * ONE, [])

    def test_repeated_failures_never_mutate(self, chain: Chain, distribution: Distribution, deployed) -> None:
        token, airdrop = deployed
        alice = distribution.recipient(ALICE)
        for _ in range(3):
            with pytest.raises(InvalidProof):
                airdrop.claim(ALICE, alice.amount - 1, alice.proof)
        assert not airdrop.has_claimed(ALICE)
        assert airdrop.total_claimed() == 0
        assert token.balance_of(ALICE) == 0
        assert _claimed_events(chain) == []

        airdrop.claim(ALICE, alice.amount, alice.proof)
        assert airdrop.total_claimed() == alice.amount

    def test_malformed_proof_element(self, distribution: Distribution, deployed) -> None:
        _, airdrop = deployed
        with pytest.raises(ValueError):
            airdrop.claim(ALICE, 100 * ONE, ["0x1234"])


class TestValidationOrder:
    def test_zero_amount_before_proof(self, deployed) -> None:
        _, airdrop = deployed
        with pytest.raises(ZeroAmount):
            airdrop.claim(ALICE, 0, [])

    def test_paused_before_already_claimed(self, distribution: Distribution, deployed) -> None:
        _, airdrop = deployed
        alice = distribution.recipient(ALICE)
        airdrop.claim(ALICE, alice.amount, alice.proof)
        airdrop.pause(OWNER)
        with pytest.raises(Paused):
            airdrop.claim(ALICE, alice.amount, alice.proof)

    def test_already_claimed_before_zero_amount(self, distribution: Distribution, deployed) -> None:
        _, airdrop = deployed
        alice = distribution.recipient(ALICE)
        airdrop.claim(ALICE, alice.amount, alice.proof)
        with pytest.raises(AlreadyClaimed):
            airdrop.claim(ALICE, 0, [])

    def test_bound_before_proof(self, deployed) -> None:
        _, airdrop = deployed
        with pytest.raises(ExceedsMaxClaimAmount):
            airdrop.claim(MALLORY, 1001 * ONE, [])


class TestPauseGating:
    def test_paused_claim_then_unpause(self, distribution: Distribution, deployed) -> None:
        _, airdrop = deployed
        bob = distribution.recipient(BOB)
        airdrop.pause(OWNER)
        assert not airdrop.can_claim(BOB, bob.amount, bob.proof)
        with pytest.raises(Paused):
            airdrop.claim(BOB, bob.amount, bob.proof)
        assert not airdrop.has_claimed(BOB)

        airdrop.unpause(OWNER)
        airdrop.claim(BOB, bob.amount, bob.proof)
        assert airdrop.has_claimed(BOB)


class TestBoundEnforcement:
    def test_valid_proof_over_bound_rejected(self, chain: Chain) -> None:
        dist = Distribution.build([(ALICE, 2000 * ONE), (BOB, 1 * ONE)])
        token, airdrop = _deploy(chain, dist)
        alice = dist.recipient(ALICE)
        with pytest.raises(ExceedsMaxClaimAmount) as exc:
            airdrop.claim(ALICE, alice.amount, alice.proof)
        assert exc.value.maximum == 1000 * ONE
        assert token.balance_of(ALICE) == 0

    def test_raised_bound_allows_claim(self, chain: Chain) -> None:
        dist = Distribution.build([(ALICE, 2000 * ONE), (BOB, 1 * ONE)])
        _, airdrop = _deploy(chain, dist)
        airdrop.set_max_claim_amount(OWNER, 2000 * ONE)
        alice = dist.recipient(ALICE)
        airdrop.claim(ALICE, alice.amount, alice.proof)
        assert airdrop.has_claimed(ALICE)

    def test_rotatable_profile_unbounded(self, chain: Chain) -> None:
        dist = Distribution.build([(ALICE, 10**6 * ONE)])
        token, airdrop = _deploy(chain, dist, DropProfile.ROTATABLE)
        assert airdrop.max_claim_amount() is None
        airdrop.claim(ALICE, 10**6 * ONE, [])
        assert token.balance_of(ALICE) == 10**6 * ONE


class _FailingToken(MintableToken):
    """Credits the recipient, then fails."""

    def mint(self, sender: str, to: str, amount: int) -> None:
        super().mint(sender, to, amount)
        raise RuntimeError("mint hook failed")


class _BrokenMinter:
    def __init__(self) -> None:
        self.calls = 0

    def mint(self, sender: str, to: str, amount: int) -> None:
        self.calls += 1
        raise RuntimeError("minter unavailable")


class _RecordingMinter:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, int]] = []

    def mint(self, sender: str, to: str, amount: int) -> None:
        self.calls.append((sender, to, amount))


class TestAtomicity:
    def test_mint_failure_rolls_back_everything(self, chain: Chain, distribution: Distribution) -> None:
        token, airdrop = _deploy(chain, distribution, token_cls=_FailingToken)
        alice = distribution.recipient(ALICE)
        events_before = chain.event_log.count

        with pytest.raises(RuntimeError):
            airdrop.claim(ALICE, alice.amount, alice.proof)

        assert not airdrop.has_claimed(ALICE)
        assert airdrop.total_claimed() == 0
        assert token.balance_of(ALICE) == 0
        assert token.total_supply() == 0
        assert chain.event_log.count == events_before

    def test_total_claimed_overflow_reverts_claim(self, chain: Chain) -> None:
        whales = Distribution.build([(ALICE, UINT256_MAX), (BOB, UINT256_MAX)])
        token, airdrop = _deploy(chain, whales, profile=DropProfile.ROTATABLE)
        alice, bob = whales.recipient(ALICE), whales.recipient(BOB)
        airdrop.claim(ALICE, alice.amount, alice.proof)
        events_before = chain.event_log.count

        with pytest.raises(ValueError, match="total_claimed"):
            airdrop.claim(BOB, bob.amount, bob.proof)

        assert not airdrop.has_claimed(BOB)
        assert airdrop.total_claimed() == UINT256_MAX
        assert token.balance_of(BOB) == 0
        assert token.total_supply() == UINT256_MAX
        assert chain.event_log.count == events_before

    def _processor(self, distribution: Distribution, minter) -> tuple[AirdropStorage, ClaimProcessor, list]:
        storage = AirdropStorage(profile=DropProfile.FIXED, merkle_root=distribution.root)
        emitted: list = []

        def emit(kind, actor, payload) -> None:
            emitted.append((kind, actor, payload))

        gate = AccessGate(storage.roles)
        store = EntitlementStore(storage, gate, Role.ADMIN, emit)
        return storage, ClaimProcessor(storage, store, minter, AIRDROP_ADDRESS, emit), emitted

    def test_processor_restores_record_without_chain(self, distribution: Distribution) -> None:
        minter = _BrokenMinter()
        storage, processor, emitted = self._processor(distribution, minter)
        alice = distribution.recipient(ALICE)

        with pytest.raises(RuntimeError):
            processor.claim(ALICE, alice.amount, alice.proof)

        assert minter.calls == 1
        assert ALICE not in storage.claimed
        assert storage.total_claimed == 0
        assert emitted == []

    def test_processor_mints_from_contract_address(self, distribution: Distribution) -> None:
        minter = _RecordingMinter()
        storage, processor, emitted = self._processor(distribution, minter)
        bob = distribution.recipient(BOB)

        processor.claim(BOB.lower(), bob.amount, bob.proof)

        assert minter.calls == [(AIRDROP_ADDRESS, BOB, bob.amount)]
        assert storage.claimed[BOB] is True
        assert emitted == [(EventKind.CLAIMED, BOB, {"account": BOB, "amount": bob.amount})]


class TestIndexedScheme:
    @pytest.fixture
    def indexed(self) -> Distribution:
        return Distribution.build(
            [(ALICE, 10 * ONE), (BOB, 20 * ONE), (ALICE, 30 * ONE)],
            LeafScheme.INDEXED,
        )

    def test_claim_sets_bit(self, chain: Chain, indexed: Distribution) -> None:
        _, airdrop = _deploy(chain, indexed)
        bob = indexed.recipient_at(1)
        airdrop.claim(BOB, bob.amount, bob.proof, bob.index)
        assert airdrop.is_claimed(1)
        assert not airdrop.is_claimed(0)
        assert _claimed_events(chain)[0]["index"] == 1

    def test_same_address_at_two_indices(self, chain: Chain, indexed: Distribution) -> None:
        token, airdrop = _deploy(chain, indexed)
        for i in (0, 2):
            r = indexed.recipient_at(i)
            airdrop.claim(ALICE, r.amount, r.proof, r.index)
        assert token.balance_of(ALICE) == 40 * ONE

    def test_index_claimed_twice_rejected(self, chain: Chain, indexed: Distribution) -> None:
        _, airdrop = _deploy(chain, indexed)
        r = indexed.recipient_at(0)
        airdrop.claim(ALICE, r.amount, r.proof, r.index)
        with pytest.raises(AlreadyClaimed):
            airdrop.claim(ALICE, r.amount, r.proof, r.index)

    def test_wrong_index_is_invalid_proof(self, chain: Chain, indexed: Distribution) -> None:
        _, airdrop = _deploy(chain, indexed)
        r = indexed.recipient_at(0)
        with pytest.raises(InvalidProof):
            airdrop.claim(ALICE, r.amount, r.proof, 1)

    def test_missing_index_rejected(self, chain: Chain, indexed: Distribution) -> None:
        _, airdrop = _deploy(chain, indexed)
        r = indexed.recipient_at(0)
        with pytest.raises(ValueError):
            airdrop.claim(ALICE, r.amount, r.proof)


class TestRootRotation:
    def test_scenario(self, chain: Chain) -> None:
        """Tree over [(A, 100), (B, 200)], then rotated to [(B, 200)]."""
        first = Distribution.build([(ALICE, 100), (BOB, 200)])
        token, airdrop = _deploy(chain, first, DropProfile.ROTATABLE)
        alice = first.recipient(ALICE)

        airdrop.claim(ALICE, 100, alice.proof)
        assert token.balance_of(ALICE) == 100
        assert airdrop.total_claimed() == 100

        with pytest.raises(AlreadyClaimed):
            airdrop.claim(ALICE, 100, alice.proof)
        with pytest.raises(InvalidProof):
            airdrop.claim(BOB, 100, alice.proof)

        second = Distribution.build([(BOB, 200)])
        airdrop.set_root(OWNER, second.root)
        assert airdrop.merkle_root() == second.root

        with pytest.raises(InvalidProof):
            airdrop.claim(BOB, 200, first.recipient(BOB).proof)
        airdrop.claim(BOB, 200, second.recipient(BOB).proof)
        assert airdrop.total_claimed() == 300

    def test_dropped_entry_unreachable(self, chain: Chain) -> None:
        first = Distribution.build([(ALICE, 100), (BOB, 200)])
        _, airdrop = _deploy(chain, first, DropProfile.ROTATABLE)
        airdrop.set_root(OWNER, Distribution.build([(BOB, 200)]).root)
        alice = first.recipient(ALICE)
        with pytest.raises(InvalidProof):
            airdrop.claim(ALICE, 100, alice.proof)

    def test_account_record_survives_rotation(self, chain: Chain) -> None:
        first = Distribution.build([(ALICE, 100), (BOB, 200)])
        _, airdrop = _deploy(chain, first, DropProfile.ROTATABLE)
        airdrop.claim(ALICE, 100, first.recipient(ALICE).proof)

        second = Distribution.build([(ALICE, 500), (CAROL, 1)])
        airdrop.set_root(OWNER, second.root)
        with pytest.raises(AlreadyClaimed):
            airdrop.claim(ALICE, 500, second.recipient(ALICE).proof)

    def test_indexed_second_round_claims_again(self, chain: Chain) -> None:
        """Index-keyed records let an address claim again at a new index."""
        first = Distribution.build([(ALICE, 100), (BOB, 200)], LeafScheme.INDEXED)
        token, airdrop = _deploy(chain, first, DropProfile.ROTATABLE)
        r = first.recipient(ALICE)
        airdrop.claim(ALICE, r.amount, r.proof, r.index)

        second = Distribution.build([(BOB, 200), (CAROL, 1), (ALICE, 500)], LeafScheme.INDEXED)
        airdrop.set_root(OWNER, second.root)
        r2 = second.recipient(ALICE)
        assert r2.index == 2
        airdrop.claim(ALICE, r2.amount, r2.proof, r2.index)

        assert token.balance_of(ALICE) == 600
        assert airdrop.total_claimed() == 600
