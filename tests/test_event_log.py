"""Tests for the append-only event log and its JSONL persistence."""

import json
from datetime import datetime, timezone

import pytest

from merkledrop.persistence.event_log import EventKind, EventLog, EventRecord


ALICE = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
CONTRACT = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
TS = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _record(event_id: str, kind: EventKind = EventKind.CLAIMED, amount: int = 100) -> EventRecord:
    return EventRecord.create(
        event_id=event_id,
        event_kind=kind,
        actor_id=ALICE,
        payload={"contract": CONTRACT, "account": ALICE, "amount": amount},
        timestamp_utc=TS,
    )


class TestEventRecord:
    def test_hash_is_deterministic(self) -> None:
        assert _record("EVT-1").event_hash == _record("EVT-1").event_hash
        assert _record("EVT-1").event_hash.startswith("sha256:")

    def test_payload_changes_hash(self) -> None:
        assert _record("EVT-1", amount=1).event_hash != _record("EVT-1", amount=2).event_hash

    def test_contract_property(self) -> None:
        assert _record("EVT-1").contract == CONTRACT


class TestEventLog:
    def test_append_and_filter(self) -> None:
        log = EventLog()
        log.append(_record("EVT-1"))
        log.append(_record("EVT-2", EventKind.PAUSED))
        assert log.count == 2
        assert [e.event_id for e in log.events(EventKind.PAUSED)] == ["EVT-2"]
        assert log.events(contract=ALICE) == []
        assert log.last_event.event_id == "EVT-2"

    def test_duplicate_id_rejected(self) -> None:
        log = EventLog()
        log.append(_record("EVT-1"))
        with pytest.raises(ValueError):
            log.append(_record("EVT-1"))

    def test_persist_and_reload(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        log.append(_record("EVT-1", amount=2**200))
        log.append(_record("EVT-2", EventKind.UNPAUSED))

        reloaded = EventLog(storage_path=path)
        assert reloaded.count == 2
        assert reloaded.events()[0].payload["amount"] == 2**200
        assert reloaded.events()[1].event_kind == EventKind.UNPAUSED

    def test_tampered_record_rejected(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(storage_path=path).append(_record("EVT-1"))

        data = json.loads(path.read_text())
        data["payload"]["amount"] = 999
        path.write_text(json.dumps(data) + "\n")

        with pytest.raises(ValueError, match="Integrity"):
            EventLog(storage_path=path)

    def test_replayed_record_rejected(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(storage_path=path).append(_record("EVT-1"))
        line = path.read_text()
        path.write_text(line + line)

        with pytest.raises(ValueError, match="Duplicate"):
            EventLog(storage_path=path)
