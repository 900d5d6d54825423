"""
Snapshot Module

Converts the four live ledger stores into a flat durable representation and
rebuilds them from it. Used only at process-lifecycle boundaries, never while
requests are being served.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, Tuple

from .logging_config import get_logger, log_action
from .storage import StorageInterface


Pairs = List[Tuple[str, Dict[str, Any]]]


@dataclass
class Snapshot:
    """Four key/value sequences, one per live store"""
    accounts: Pairs = field(default_factory=list)
    staking_positions: Pairs = field(default_factory=list)
    loans: Pairs = field(default_factory=list)
    transactions: Pairs = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe form: each store becomes a list of [key, value] pairs"""
        return {
            name: [[key, value] for key, value in pairs]
            for name, pairs in self.stores().items()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Snapshot':
        return cls(**{
            name: [(key, value) for key, value in data.get(name, [])]
            for name in SnapshotManager.STORES
        })

    def stores(self) -> Dict[str, Pairs]:
        return {
            "accounts": self.accounts,
            "staking_positions": self.staking_positions,
            "loans": self.loans,
            "transactions": self.transactions,
        }

    def is_empty(self) -> bool:
        return not any(self.stores().values())


class SnapshotManager:
    """
    Freezes and restores the live stores.

    freeze() also keeps the snapshot in a durable buffer, the way state is
    staged before a restart; restore() drains that buffer.
    """

    # Snapshot field name -> live table name
    STORES = ("accounts", "staking_positions", "loans", "transactions")
    DURABLE_PREFIX = "snapshot_"

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self._buffer: Optional[Snapshot] = None
        self.logger = get_logger("dbank.snapshot")

    @property
    def buffer(self) -> Optional[Snapshot]:
        return self._buffer

    def freeze(self) -> Snapshot:
        """Capture every live store as (key, value) pairs"""
        snapshot = Snapshot(**{
            name: self.storage.items(name) for name in self.STORES
        })
        self._buffer = snapshot

        log_action(
            self.logger, "info", "Ledger snapshot frozen",
            action="freeze", resource="snapshot",
            extra={name: len(pairs) for name, pairs in snapshot.stores().items()}
        )
        return snapshot

    def restore(self, snapshot: Optional[Snapshot] = None) -> None:
        """
        Rebuild every live store from a snapshot, then clear the buffer.

        Without an argument the buffered snapshot is used; with neither the
        stores are left as they are.
        """
        snapshot = snapshot if snapshot is not None else self._buffer
        if snapshot is None:
            return

        with self.storage.atomic():
            for name, pairs in snapshot.stores().items():
                self.storage.clear_table(name)
                for key, value in pairs:
                    self.storage.save(name, key, value)
        self._buffer = None

        log_action(
            self.logger, "info", "Ledger snapshot restored",
            action="restore", resource="snapshot",
            extra={name: len(pairs) for name, pairs in snapshot.stores().items()}
        )

    def save(self, snapshot: Snapshot, durable: StorageInterface) -> None:
        """Write a snapshot to a durable backend, replacing what was there"""
        with durable.atomic():
            for name, pairs in snapshot.stores().items():
                table = self.DURABLE_PREFIX + name
                durable.clear_table(table)
                for key, value in pairs:
                    durable.save(table, key, value)

    def load(self, durable: StorageInterface) -> Optional[Snapshot]:
        """Read a snapshot back from a durable backend (None when it holds nothing)"""
        snapshot = Snapshot(**{
            name: durable.items(self.DURABLE_PREFIX + name) for name in self.STORES
        })
        if snapshot.is_empty():
            return None
        return snapshot
