"""State store: JSON snapshot of every deployed contract.

The event log is the audit trail; the state store is the fast restart
path. After each committed operation the service writes the full chain
state (contract storage, airdrop logic version, deployer nonces) to a
single JSON file, replacing it atomically.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from merkledrop.models.airdrop import AirdropStorage
from merkledrop.runtime.chain import Chain
from merkledrop.runtime.proxy import LOGIC_REGISTRY, AirdropProxy
from merkledrop.token.mintable import MintableToken, TokenStorage


class StateStore:
    """File-backed chain snapshot.

    Usage:
        store = StateStore(storage_path=data_dir / "state.json")
        store.load_chain(chain)       # re-register persisted contracts
        ...
        store.save_chain(chain, [token, airdrop])
    """

    def __init__(self, storage_path: Path) -> None:
        self._storage_path = storage_path

    @property
    def exists(self) -> bool:
        return self._storage_path.exists()

    def save_chain(self, chain: Chain, contracts: list[Any]) -> None:
        """Write nonces and contract storage. Raises OSError on failure."""
        records: list[dict[str, Any]] = []
        for contract in contracts:
            if isinstance(contract, MintableToken):
                records.append({
                    "kind": "token",
                    "address": contract.address,
                    "storage": contract.storage.to_dict(),
                })
            elif isinstance(contract, AirdropProxy):
                records.append({
                    "kind": "airdrop",
                    "address": contract.address,
                    "implementation": contract.implementation.VERSION,
                    "storage": contract.storage.to_dict(),
                })
            else:
                raise TypeError(f"Cannot persist contract type {type(contract).__name__}")

        document = {"nonces": chain.nonces, "contracts": records}
        tmp_path = self._storage_path.with_suffix(self._storage_path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(document, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp_path, self._storage_path)

    def load_chain(self, chain: Chain) -> list[Any]:
        """Rebuild persisted contracts on the given chain.

        Returns the contracts in the order they were saved. Unknown
        logic versions raise ValueError (fail-closed).
        """
        if not self._storage_path.exists():
            return []
        document = json.loads(self._storage_path.read_text(encoding="utf-8"))
        chain.restore_nonces(document.get("nonces", {}))

        contracts: list[Any] = []
        for record in document.get("contracts", []):
            kind = record.get("kind")
            if kind == "token":
                contract: Any = MintableToken(
                    chain, record["address"], TokenStorage.from_dict(record["storage"]),
                )
            elif kind == "airdrop":
                version = record["implementation"]
                implementation = LOGIC_REGISTRY.get(version)
                if implementation is None:
                    raise ValueError(f"Unknown airdrop logic version: {version}")
                contract = AirdropProxy(
                    chain,
                    record["address"],
                    AirdropStorage.from_dict(record["storage"]),
                    implementation,
                )
            else:
                raise ValueError(f"Unknown contract kind in state file: {kind!r}")
            chain.register(contract)
            contracts.append(contract)
        return contracts
