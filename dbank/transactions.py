"""
Transaction Log Module

Append-only per-user history of completed ledger operations. Transaction ids
come from one process-wide counter shared across all users.
"""

from dataclasses import dataclass, asdict
from typing import Dict, List, Any
from enum import Enum

from .clock import Clock
from .storage import StorageInterface


class TransactionType(Enum):
    """Categories of ledger transactions"""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    STAKE = "stake"
    UNSTAKE = "unstake"
    LOAN = "loan"
    REPAYMENT = "repayment"


@dataclass(frozen=True)
class TransactionRecord:
    """Immutable record of one completed operation"""
    id: int
    tx_type: TransactionType
    amount: int
    timestamp: int          # nanoseconds
    description: str

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result['tx_type'] = self.tx_type.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TransactionRecord':
        return cls(
            id=int(data['id']),
            tx_type=TransactionType(data['tx_type']),
            amount=int(data['amount']),
            timestamp=int(data['timestamp']),
            description=data['description']
        )


class TransactionLog:
    """
    Owns every user's transaction history.

    The id counter lives only in memory: it starts at 1 on a cold start and
    is reseeded from the stored histories after a snapshot restore.
    """

    def __init__(self, storage: StorageInterface, clock: Clock):
        self.storage = storage
        self.clock = clock
        self.transactions_table = "transactions"
        self._next_id = 1

    @property
    def next_id(self) -> int:
        return self._next_id

    def append(
        self,
        user_id: str,
        tx_type: TransactionType,
        amount: int,
        description: str
    ) -> TransactionRecord:
        """
        Append a transaction to a user's history

        Args:
            user_id: Owner of the history
            tx_type: Transaction category
            amount: Amount in token units
            description: Free-text description

        Returns:
            The stored TransactionRecord
        """
        record = TransactionRecord(
            id=self._next_id,
            tx_type=tx_type,
            amount=amount,
            timestamp=self.clock.now(),
            description=description
        )
        self._next_id += 1

        entry = self.storage.load(self.transactions_table, user_id)
        if entry is None:
            entry = {"user_id": user_id, "transactions": []}
        entry["transactions"].append(record.to_dict())
        self.storage.save(self.transactions_table, user_id, entry)

        return record

    def history(self, user_id: str) -> List[TransactionRecord]:
        """Get a user's transactions, oldest first"""
        entry = self.storage.load(self.transactions_table, user_id)
        if entry is None:
            return []
        return [TransactionRecord.from_dict(data) for data in entry["transactions"]]

    def reseed(self) -> int:
        """Move the counter past the highest stored id and return it"""
        highest = 0
        for entry in self.storage.load_all(self.transactions_table):
            for data in entry["transactions"]:
                highest = max(highest, int(data['id']))
        self._next_id = max(self._next_id, highest + 1)
        return self._next_id
