"""Airdrop distributions: the off-chain side of the commitment.

A distribution turns a list of (address, amount) entitlements into a
Merkle root plus one proof per recipient. The root is committed to the
airdrop; each recipient later submits their amount and proof to claim.

Input files are JSON (``[{"address": ..., "amount": ...}]``) or CSV with
an ``address,amount`` header. Output is a single JSON document:

    {
      "root": "0x...",
      "scheme": "account",
      "token_total": "300",
      "recipients": [
        {"index": 0, "account": "0x...", "amount": "100", "proof": ["0x..."]}
      ]
    }
"""

from __future__ import annotations

import csv
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from merkledrop.crypto.merkle import (
    MerkleTree,
    indexed_leaf_hash,
    leaf_hash,
    verify_proof,
)
from merkledrop.models.airdrop import LeafScheme
from merkledrop.models.evm import hash_hex, normalize_address, require_uint256, to_hash32


@dataclass(frozen=True)
class Recipient:
    """One entitlement together with its proof."""
    index: int
    account: str
    amount: int
    proof: tuple[bytes, ...]

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "account": self.account,
            "amount": str(self.amount),
            "proof": [hash_hex(p) for p in self.proof],
        }


@dataclass(frozen=True)
class Distribution:
    """A committed set of entitlements: root plus per-recipient proofs."""
    root: bytes
    scheme: LeafScheme
    recipients: tuple[Recipient, ...]

    @property
    def token_total(self) -> int:
        return sum(r.amount for r in self.recipients)

    @staticmethod
    def build(
        entries: Iterable[tuple[str, int]],
        scheme: LeafScheme = LeafScheme.ACCOUNT,
    ) -> Distribution:
        """Build the tree over entries in the order given.

        Indices are positional (0, 1, 2, ...). In the account scheme an
        address may appear only once, because the claim record is keyed
        by address and a second leaf could never be redeemed.
        """
        rows = [
            (normalize_address(account), require_uint256(amount, "amount"))
            for account, amount in entries
        ]
        if not rows:
            raise ValueError("Distribution needs at least one recipient")
        if scheme == LeafScheme.ACCOUNT:
            seen: set[str] = set()
            for account, _ in rows:
                if account in seen:
                    raise ValueError(f"Duplicate recipient address: {account}")
                seen.add(account)

        leaves = [
            _leaf_for(scheme, i, account, amount)
            for i, (account, amount) in enumerate(rows)
        ]
        tree = MerkleTree(leaves)
        root = tree.compute_root()
        recipients = tuple(
            Recipient(
                index=i,
                account=account,
                amount=amount,
                proof=tree.proof_at(i).siblings,
            )
            for i, (account, amount) in enumerate(rows)
        )
        return Distribution(root=root, scheme=scheme, recipients=recipients)

    def recipient(self, account: str) -> Optional[Recipient]:
        """First entitlement for an address, or None."""
        canonical = normalize_address(account)
        for r in self.recipients:
            if r.account == canonical:
                return r
        return None

    def recipient_at(self, index: int) -> Recipient:
        for r in self.recipients:
            if r.index == index:
                return r
        raise KeyError(f"No recipient at index {index}")

    def verify(self, recipient: Recipient) -> bool:
        """Check a recipient's proof against this distribution's root."""
        leaf = _leaf_for(self.scheme, recipient.index, recipient.account, recipient.amount)
        return verify_proof(recipient.proof, self.root, leaf)

    def to_dict(self) -> dict:
        return {
            "root": hash_hex(self.root),
            "scheme": self.scheme.value,
            "token_total": str(self.token_total),
            "recipients": [r.to_dict() for r in self.recipients],
        }

    @staticmethod
    def from_dict(data: dict) -> Distribution:
        recipients = tuple(
            Recipient(
                index=int(r["index"]),
                account=normalize_address(r["account"]),
                amount=int(r["amount"]),
                proof=tuple(to_hash32(p) for p in r["proof"]),
            )
            for r in data["recipients"]
        )
        return Distribution(
            root=to_hash32(data["root"]),
            scheme=LeafScheme(data.get("scheme", LeafScheme.ACCOUNT.value)),
            recipients=recipients,
        )

    def save(self, path: Path) -> None:
        path.write_text(json.dumps(self.to_dict(), indent=2) + "\n", encoding="utf-8")

    @staticmethod
    def load(path: Path) -> Distribution:
        return Distribution.from_dict(json.loads(path.read_text(encoding="utf-8")))


def load_entries(path: Path) -> list[tuple[str, int]]:
    """Read (address, amount) rows from a JSON or CSV recipients file."""
    if path.suffix.lower() == ".csv":
        rows: list[tuple[str, int]] = []
        with path.open("r", newline="", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            if not reader.fieldnames or not {"address", "amount"} <= set(reader.fieldnames):
                raise ValueError("CSV needs header: address,amount")
            for row in reader:
                address = (row.get("address") or "").strip()
                amount = (row.get("amount") or "").strip()
                if address and amount:
                    rows.append((address, _parse_amount(amount)))
        return rows

    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError("Recipients JSON must be a list of {address, amount}")
    return [(item["address"], _parse_amount(item["amount"])) for item in data]


def _parse_amount(raw: object) -> int:
    text = str(raw).strip()
    if not text.isdigit():
        raise ValueError(f"Amount must be a non-negative integer, got {raw!r}")
    return int(text)


def _leaf_for(scheme: LeafScheme, index: int, account: str, amount: int) -> bytes:
    if scheme == LeafScheme.INDEXED:
        return indexed_leaf_hash(index, account, amount)
    return leaf_hash(account, amount)
