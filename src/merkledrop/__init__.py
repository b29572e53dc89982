"""Merkle-committed token airdrop."""

__version__ = "0.1.0"
