"""Execution environment: serialized, all-or-nothing contract calls.

The chain runs one state-mutating call at a time. Each top-level call is
a transaction: the storage of every registered contract is snapshotted
first; if the call raises, every contract is restored and the events it
buffered are discarded; if it returns, the buffered events are appended
to the event log in emission order. A call made from inside another
(e.g. claim -> mint) joins the enclosing transaction.

There is no locking: the chain is not thread-safe and callers must
serialize access, exactly as the environment it models does.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Protocol, runtime_checkable

from eth_abi.packed import encode_packed
from eth_utils import keccak, to_checksum_address

from merkledrop.models.evm import normalize_address
from merkledrop.persistence.event_log import EventKind, EventLog, EventRecord

logger = logging.getLogger(__name__)


@runtime_checkable
class Contract(Protocol):
    """Anything the chain can snapshot and restore."""

    @property
    def address(self) -> str:
        ...

    def snapshot(self) -> Any:
        ...

    def restore(self, snapshot: Any) -> None:
        ...


class Chain:
    """Registry of deployed contracts plus the transaction boundary.

    Usage:
        chain = Chain()
        token = MintableToken.deploy(chain, deployer)
        with chain.transaction():
            ...  # all-or-nothing
    """

    def __init__(self, event_log: Optional[EventLog] = None) -> None:
        self._event_log = event_log if event_log is not None else EventLog()
        self._contracts: Dict[str, Contract] = {}
        self._nonces: Dict[str, int] = {}
        self._pending: Optional[list[tuple[EventKind, str, dict[str, Any]]]] = None
        self._event_counter = self._event_log.count

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    @property
    def nonces(self) -> Dict[str, int]:
        return dict(self._nonces)

    def restore_nonces(self, nonces: Dict[str, int]) -> None:
        self._nonces = {normalize_address(a): int(n) for a, n in nonces.items()}

    def next_address(self, deployer: str) -> str:
        """Derive the address for the deployer's next contract."""
        deployer = normalize_address(deployer)
        nonce = self._nonces.get(deployer, 0)
        self._nonces[deployer] = nonce + 1
        digest = keccak(encode_packed(["address", "uint256"], [deployer, nonce]))
        return to_checksum_address(digest[-20:])

    def register(self, contract: Contract) -> None:
        if contract.address in self._contracts:
            raise ValueError(f"Address already in use: {contract.address}")
        self._contracts[contract.address] = contract

    def contract(self, address: str) -> Contract:
        canonical = normalize_address(address)
        found = self._contracts.get(canonical)
        if found is None:
            raise KeyError(f"No contract at {canonical}")
        return found

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run the enclosed block atomically across every contract."""
        if self._pending is not None:
            yield
            return

        snapshots = {addr: c.snapshot() for addr, c in self._contracts.items()}
        self._pending = []
        try:
            yield
        except BaseException:
            for addr, snap in snapshots.items():
                self._contracts[addr].restore(snap)
            discarded = len(self._pending)
            self._pending = None
            logger.debug("Transaction reverted, %d buffered events discarded", discarded)
            raise

        pending, self._pending = self._pending, None
        for kind, actor_id, payload in pending:
            self._event_counter += 1
            self._event_log.append(EventRecord.create(
                event_id=f"EVT-{self._event_counter:08d}",
                event_kind=kind,
                actor_id=actor_id,
                payload=payload,
            ))

    def emit(
        self,
        contract_address: str,
        kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
    ) -> None:
        """Buffer an event until the enclosing transaction commits."""
        if self._pending is None:
            raise RuntimeError("Events can only be emitted inside a transaction")
        self._pending.append((kind, actor_id, {"contract": contract_address, **payload}))
