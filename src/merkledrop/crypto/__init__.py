"""Cryptographic primitives: leaf hashing, sorted-pair Merkle trees, distributions."""

from merkledrop.crypto.merkle import (
    MerkleProof,
    MerkleTree,
    hash_pair,
    indexed_leaf_hash,
    leaf_hash,
    process_proof,
    verify_proof,
)
from merkledrop.crypto.distribution import Distribution, Recipient

__all__ = [
    "Distribution",
    "MerkleProof",
    "MerkleTree",
    "Recipient",
    "hash_pair",
    "indexed_leaf_hash",
    "leaf_hash",
    "process_proof",
    "verify_proof",
]
