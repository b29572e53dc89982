"""Merkle commitment scheme for airdrop entitlements.

Uses keccak-256 as the hash function and an order-independent pairing
rule: the two 32-byte children are sorted byte-wise before being
concatenated and hashed. Proofs therefore carry only sibling hashes, no
left/right markers.

The tree builder reproduces the published off-chain generator
(merkletreejs with ``sortPairs``) bit for bit:
- leaves keep their input order (they are not sorted),
- an unpaired last node is promoted unchanged to the next level,
- a single-leaf tree has the leaf as its root and an empty proof.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from eth_utils import keccak
from web3 import Web3

from merkledrop.models.evm import (
    hash_hex,
    normalize_address,
    require_uint256,
    to_hash32,
)


@dataclass(frozen=True)
class MerkleProof:
    """An inclusion proof for a single leaf."""
    leaf: bytes
    siblings: tuple[bytes, ...]
    root: bytes

    def hex_siblings(self) -> list[str]:
        return [hash_hex(s) for s in self.siblings]


def leaf_hash(account: str, amount: int) -> bytes:
    """keccak256(abi.encodePacked(address account, uint256 amount))."""
    return bytes(Web3.solidity_keccak(
        ["address", "uint256"],
        [normalize_address(account), require_uint256(amount, "amount")],
    ))


def indexed_leaf_hash(index: int, account: str, amount: int) -> bytes:
    """keccak256(abi.encodePacked(uint256 index, address account, uint256 amount))."""
    return bytes(Web3.solidity_keccak(
        ["uint256", "address", "uint256"],
        [
            require_uint256(index, "index"),
            normalize_address(account),
            require_uint256(amount, "amount"),
        ],
    ))


def hash_pair(a: bytes, b: bytes) -> bytes:
    """Hash two nodes in sorted order so position does not matter."""
    if a <= b:
        return keccak(a + b)
    return keccak(b + a)


def process_proof(leaf: bytes, proof: Iterable[bytes | str]) -> bytes:
    """Fold a proof onto a leaf and return the implied root."""
    computed = to_hash32(leaf)
    for sibling in proof:
        computed = hash_pair(computed, to_hash32(sibling))
    return computed


def verify_proof(proof: Iterable[bytes | str], root: bytes | str, leaf: bytes) -> bool:
    """True if the proof folds the leaf to exactly this root."""
    return process_proof(leaf, proof) == to_hash32(root)


class MerkleTree:
    """Off-chain tree builder matching the on-chain verification rule.

    Usage:
        tree = MerkleTree()
        tree.add_leaf(leaf_hash(alice, 100))
        tree.add_leaf(leaf_hash(bob, 200))
        root = tree.compute_root()
        proof = tree.inclusion_proof(leaf_hash(alice, 100))
    """

    def __init__(self, leaves: Optional[Sequence[bytes]] = None) -> None:
        self._leaves: list[bytes] = []
        self._layers: list[list[bytes]] = []
        self._computed = False
        for leaf in leaves or ():
            self.add_leaf(leaf)

    def add_leaf(self, leaf: bytes) -> None:
        """Add a leaf hash. Must be called before compute_root."""
        if self._computed:
            raise RuntimeError("Tree already computed. Create a new tree.")
        self._leaves.append(to_hash32(leaf))

    @property
    def layers(self) -> list[list[bytes]]:
        """All levels from leaves (index 0) to root. Requires compute_root."""
        if not self._computed:
            raise RuntimeError("Must call compute_root before reading layers")
        return [list(layer) for layer in self._layers]

    def compute_root(self) -> bytes:
        """Build every level and return the root.

        Raises ValueError for an empty tree: an airdrop with no
        entitlements has nothing to commit to.
        """
        if not self._leaves:
            raise ValueError("Cannot build a Merkle tree with no leaves")
        if self._computed:
            return self._layers[-1][0]

        self._layers = [list(self._leaves)]
        current = self._layers[0]
        while len(current) > 1:
            parents: list[bytes] = []
            for i in range(0, len(current), 2):
                if i + 1 < len(current):
                    parents.append(hash_pair(current[i], current[i + 1]))
                else:
                    parents.append(current[i])  # promoted unpaired
            self._layers.append(parents)
            current = parents

        self._computed = True
        return current[0]

    def inclusion_proof(self, leaf: bytes) -> MerkleProof | None:
        """Generate the proof for the first occurrence of a leaf.

        Returns None if the leaf is not in the tree.
        """
        if not self._computed:
            raise RuntimeError("Must call compute_root before generating proofs")
        leaf = to_hash32(leaf)
        if leaf not in self._layers[0]:
            return None
        return self.proof_at(self._layers[0].index(leaf))

    def proof_at(self, position: int) -> MerkleProof:
        """Generate the proof for the leaf at a given input position."""
        if not self._computed:
            raise RuntimeError("Must call compute_root before generating proofs")
        if not 0 <= position < len(self._layers[0]):
            raise IndexError(f"No leaf at position {position}")

        siblings: list[bytes] = []
        idx = position
        for level in self._layers[:-1]:
            pair = idx - 1 if idx % 2 else idx + 1
            if pair < len(level):
                siblings.append(level[pair])
            idx //= 2

        return MerkleProof(
            leaf=self._layers[0][position],
            siblings=tuple(siblings),
            root=self._layers[-1][0],
        )
