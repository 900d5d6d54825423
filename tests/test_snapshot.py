"""
Test suite for snapshot freeze/restore and durable persistence
"""

import json
from pathlib import Path

from dbank.bank import BankingSystem
from dbank.clock import ManualClock, NANOS_PER_SECOND
from dbank.config import DBankConfig
from dbank.snapshot import Snapshot, SnapshotManager
from dbank.storage import InMemoryStorage, SQLiteStorage


START = 1_700_000_000 * NANOS_PER_SECOND


def populated_system(clock=None):
    """System with one staker/borrower and one plain depositor"""
    clock = clock or ManualClock(start_ns=START)
    system = BankingSystem(storage=InMemoryStorage(), clock=clock, config=DBankConfig(_env_file=None))
    system.top_up("alice", 2000)
    system.stake_tokens("alice", 1000)
    system.apply_for_loan("alice", 500, 30)
    system.top_up("bob", 300)
    return system


class TestSnapshot:
    """Test the Snapshot container"""

    def test_empty(self):
        assert Snapshot().is_empty()
        assert not Snapshot(accounts=[("alice", {"balance": 1})]).is_empty()

    def test_dict_form_is_json_safe(self):
        snapshot = populated_system().serialize()
        text = json.dumps(snapshot.to_dict())
        assert Snapshot.from_dict(json.loads(text)) == snapshot

    def test_from_dict_tolerates_missing_stores(self):
        snapshot = Snapshot.from_dict({"accounts": [["alice", {"balance": 1}]]})
        assert snapshot.accounts == [("alice", {"balance": 1})]
        assert snapshot.loans == []


class TestSnapshotManager:
    """Test freezing and restoring the live stores"""

    def test_freeze_captures_every_store(self):
        system = populated_system()
        snapshot = system.serialize()

        assert [key for key, _ in snapshot.accounts] == ["alice", "bob"]
        assert [key for key, _ in snapshot.staking_positions] == ["alice"]
        assert [key for key, _ in snapshot.loans] == ["alice"]
        assert [key for key, _ in snapshot.transactions] == ["alice", "bob"]
        assert system.snapshot_manager.buffer == snapshot

    def test_restore_rebuilds_stores(self):
        source = populated_system()
        snapshot = source.serialize()

        target = BankingSystem(
            storage=InMemoryStorage(), clock=ManualClock(start_ns=START),
            config=DBankConfig(_env_file=None)
        )
        target.top_up("mallory", 50)
        target.deserialize(snapshot)

        assert target.account_manager.get_account("mallory") is None
        assert target.account_manager.get_account("alice") == source.account_manager.get_account("alice")
        assert target.get_loan_history("alice") == source.get_loan_history("alice")
        assert target.get_transaction_history("bob") == source.get_transaction_history("bob")
        assert target.staking_manager.get_position("alice") == source.staking_manager.get_position("alice")

    def test_restore_from_buffer_then_clears_it(self):
        system = populated_system()
        system.serialize()
        system.top_up("carol", 10)

        system.deserialize()
        assert system.account_manager.get_account("carol") is None
        assert system.snapshot_manager.buffer is None

    def test_restore_without_snapshot_is_noop(self):
        system = populated_system()
        before = system.storage.items("accounts")
        system.deserialize()
        assert system.storage.items("accounts") == before

    def test_restore_round_trip_is_identity(self):
        """serialize -> deserialize -> serialize gives the same snapshot"""
        system = populated_system()
        first = system.serialize()
        system.deserialize()
        assert system.serialize() == first

    def test_restore_reseeds_transaction_ids(self):
        source = populated_system()
        snapshot = source.serialize()
        highest = max(
            record.id
            for user_id in ("alice", "bob")
            for record in source.get_transaction_history(user_id)
        )

        target = BankingSystem(
            storage=InMemoryStorage(), clock=ManualClock(start_ns=START),
            config=DBankConfig(_env_file=None)
        )
        target.deserialize(snapshot)
        target.top_up("carol", 10)
        assert target.get_transaction_history("carol")[0].id == highest + 1

    def test_restore_recomputes_stats(self):
        source = populated_system()
        target = BankingSystem(
            storage=InMemoryStorage(), clock=ManualClock(start_ns=START),
            config=DBankConfig(_env_file=None)
        )
        target.deserialize(source.serialize())
        assert target.get_system_stats() == source.get_system_stats()

    def test_restored_state_keeps_accruing(self):
        clock = ManualClock(start_ns=START)
        source = populated_system(clock)
        snapshot = source.serialize()

        clock.advance(days=1)
        target = BankingSystem(storage=InMemoryStorage(), clock=clock, config=DBankConfig(_env_file=None))
        target.deserialize(snapshot)
        assert target.get_balance("alice") == source.get_balance("alice")
        assert target.get_staking_info("alice").amount == 1080


class TestDurableSnapshot:
    """Test writing snapshots to SQLite"""

    def test_save_and_load(self, tmp_path):
        durable = SQLiteStorage(Path(tmp_path) / "snapshot.db")
        source = populated_system()
        snapshot = source.save_snapshot(durable)

        manager = SnapshotManager(InMemoryStorage())
        assert manager.load(durable) == snapshot
        durable.close()

    def test_load_from_empty_backend(self, tmp_path):
        durable = SQLiteStorage(Path(tmp_path) / "empty.db")
        system = populated_system()
        assert system.load_snapshot(durable) is False
        assert system.account_manager.get_account("alice") is not None
        durable.close()

    def test_survives_reopen(self, tmp_path):
        db_path = Path(tmp_path) / "restart.db"
        source = populated_system()
        durable = SQLiteStorage(db_path)
        source.save_snapshot(durable)
        durable.close()

        reopened = SQLiteStorage(db_path)
        target = BankingSystem(
            storage=InMemoryStorage(), clock=ManualClock(start_ns=START),
            config=DBankConfig(_env_file=None)
        )
        assert target.load_snapshot(reopened) is True
        assert target.get_loan_history("alice") == source.get_loan_history("alice")
        assert target.transaction_log.next_id == source.transaction_log.next_id
        reopened.close()

    def test_save_replaces_previous_snapshot(self, tmp_path):
        durable = SQLiteStorage(Path(tmp_path) / "replace.db")
        populated_system().save_snapshot(durable)

        small = BankingSystem(
            storage=InMemoryStorage(), clock=ManualClock(start_ns=START),
            config=DBankConfig(_env_file=None)
        )
        small.top_up("carol", 10)
        small.save_snapshot(durable)

        loaded = SnapshotManager(InMemoryStorage()).load(durable)
        assert [key for key, _ in loaded.accounts] == ["carol"]
        assert loaded.loans == []
        durable.close()
