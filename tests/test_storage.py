"""
Tests for snapshot storage, the instance lock and startup loading
"""

import json

import pytest

from ledger_store.accounts import Account
from ledger_store.errors import (
    InstanceLockError, IntegrityViolation, SnapshotParseError, SnapshotReadError
)
from ledger_store.ledger import Transfer, RESERVOIR_ID
from ledger_store.storage import (
    InstanceLock, LedgerState, PersistenceLoader, SnapshotFile, parse_snapshot
)


SAMPLE_SNAPSHOT = {
    "students": [
        {"uuid": "a-1", "name": "Cortana", "pash": "d1", "balance": 15},
        {"uuid": "a-2", "name": "Zangetsu", "pash": "d2", "balance": 5},
    ],
    "transactions": [
        {"time": 1, "from": 0, "to": "a-1", "amount": 20, "memo": ""},
        {"time": 2, "from": "a-1", "to": "a-2", "amount": 5, "memo": "lunch"},
    ],
}


class TestParseSnapshot:
    """Test snapshot parsing and validation"""

    @pytest.mark.parametrize("text", ["", "   ", "\n\n"])
    def test_blank_is_empty_state(self, text):
        """Test that blank text loads as an empty ledger"""
        state = parse_snapshot(text)
        assert state.accounts == []
        assert state.transfers == []

    def test_full_snapshot(self):
        """Test that a valid snapshot loads accounts and transfers"""
        state = parse_snapshot(json.dumps(SAMPLE_SNAPSHOT))

        assert state.accounts[0] == Account(id="a-1", name="Cortana", credential_digest="d1", balance=15)
        assert state.transfers[0] == Transfer(time=1, from_id=RESERVOIR_ID, to_id="a-1", amount=20, memo="")
        assert state.transfers[1].memo == "lunch"

    @pytest.mark.parametrize("data,accounts,transfers", [
        ({}, 0, 0),
        ({"students": SAMPLE_SNAPSHOT["students"]}, 2, 0),
        ({"transactions": [{"time": 1, "from": "a-1", "to": 0, "amount": 1}]}, 0, 1),
        ({"students": None, "transactions": None}, 0, 0),
    ])
    def test_missing_collections_default_to_empty(self, data, accounts, transfers):
        """Test that absent collections are defaulted independently"""
        state = parse_snapshot(json.dumps(data))
        assert len(state.accounts) == accounts
        assert len(state.transfers) == transfers

    @pytest.mark.parametrize("text", ["{not json", "[1, 2]", "42", '"text"', "null"])
    def test_not_an_object(self, text):
        """Test that non-object content is a parse error"""
        with pytest.raises(SnapshotParseError):
            parse_snapshot(text)

    @pytest.mark.parametrize("data", [
        {"students": [{"uuid": "a-1", "name": "Cortana"}]},
        {"students": [{"uuid": 7, "name": "Cortana", "pash": "d"}]},
        {"students": "everyone"},
        {"transactions": [{"time": 1, "from": 0, "to": "a-1", "amount": -3}]},
        {"transactions": [{"time": 1, "from": 0, "to": "a-1", "amount": 2.5}]},
        {"transactions": [{"time": 1, "from": 5, "to": "a-1", "amount": 2}]},
        {"transactions": [{"time": "yesterday", "from": 0, "to": "a-1", "amount": 2}]},
    ])
    def test_structural_validation(self, data):
        """Test that malformed records are a parse error"""
        with pytest.raises(SnapshotParseError):
            parse_snapshot(json.dumps(data))

    def test_duplicate_accounts(self):
        """Test that repeated account ids are an integrity violation"""
        data = {"students": [
            {"uuid": "a-1", "name": "Cortana", "pash": "d"},
            {"uuid": "a-1", "name": "Zangetsu", "pash": "d"},
        ]}
        with pytest.raises(IntegrityViolation):
            parse_snapshot(json.dumps(data))


class TestLedgerState:
    """Test snapshot serialization"""

    def test_serialize_layout(self):
        """Test the JSON layout and trailing newline"""
        state = parse_snapshot(json.dumps(SAMPLE_SNAPSHOT))

        text = state.serialize()
        assert text.endswith("}\n")
        assert json.loads(text) == SAMPLE_SNAPSHOT

    def test_empty_state(self):
        """Test serialization of an empty ledger"""
        assert json.loads(LedgerState().serialize()) == {"students": [], "transactions": []}


class TestInstanceLock:
    """Test the exclusive instance lock"""

    def test_second_acquire_fails(self, tmp_path):
        """Test that only one holder can take the lock"""
        path = tmp_path / "bank.lock"
        first = InstanceLock(path)
        first.acquire()

        with pytest.raises(InstanceLockError):
            InstanceLock(path).acquire()

        first.release()
        assert not path.exists()

        second = InstanceLock(path)
        second.acquire()
        second.release()

    def test_context_manager(self, tmp_path):
        """Test scoped acquisition"""
        path = tmp_path / "bank.lock"
        with InstanceLock(path) as lock:
            assert lock.held
            assert path.exists()
        assert not path.exists()

    def test_release_is_idempotent(self, tmp_path):
        """Test that releasing twice is harmless"""
        lock = InstanceLock(tmp_path / "bank.lock")
        lock.acquire()
        lock.release()
        lock.release()
        assert not lock.held

    def test_exit_code(self):
        """Test the distinguishable exit status"""
        assert InstanceLockError.exit_code == 8


class TestSnapshotFile:
    """Test snapshot file IO"""

    def test_missing_file_reads_empty(self, tmp_path):
        """Test that a missing file is treated as empty"""
        assert SnapshotFile(tmp_path / "bank.json").read() == ""

    def test_write_then_read(self, tmp_path):
        """Test that written text is read back and no temp file remains"""
        snapshot = SnapshotFile(tmp_path / "bank.json")
        snapshot.write('{"students": []}\n')

        assert snapshot.read() == '{"students": []}\n'
        assert [p.name for p in tmp_path.iterdir()] == ["bank.json"]

    def test_unreadable_file(self, tmp_path):
        """Test that a snapshot path that cannot be read is a read error"""
        (tmp_path / "bank.json").mkdir()

        with pytest.raises(SnapshotReadError) as exc_info:
            SnapshotFile(tmp_path / "bank.json").read()
        assert exc_info.value.exit_code == 1


class TestPersistenceLoader:
    """Test startup loading"""

    def test_fresh_store(self, tmp_path):
        """Test that no snapshot file loads as an empty ledger"""
        loader = PersistenceLoader(tmp_path / "bank.json", tmp_path / "bank.lock")

        assert loader.state.accounts == []
        assert loader.state.transfers == []
        assert loader.lock.held
        loader.lock.release()

    def test_loads_existing_snapshot(self, tmp_path):
        """Test that an existing snapshot is loaded"""
        (tmp_path / "bank.json").write_text(json.dumps(SAMPLE_SNAPSHOT))

        loader = PersistenceLoader(tmp_path / "bank.json", tmp_path / "bank.lock")
        assert [a.name for a in loader.state.accounts] == ["Cortana", "Zangetsu"]
        assert len(loader.state.transfers) == 2
        loader.lock.release()

    def test_second_loader_refused(self, tmp_path):
        """Test that a running instance blocks another"""
        first = PersistenceLoader(tmp_path / "bank.json", tmp_path / "bank.lock")

        with pytest.raises(InstanceLockError):
            PersistenceLoader(tmp_path / "bank.json", tmp_path / "bank.lock")

        first.lock.release()

    def test_lock_released_on_parse_failure(self, tmp_path):
        """Test that a failed load gives the lock back"""
        (tmp_path / "bank.json").write_text("garbage")

        with pytest.raises(SnapshotParseError) as exc_info:
            PersistenceLoader(tmp_path / "bank.json", tmp_path / "bank.lock")

        assert exc_info.value.exit_code == 2
        assert not (tmp_path / "bank.lock").exists()
