"""
System Reporting Module

Derives global statistics by scanning the account and staking stores. The
stats are a projection only: they are recomputed after every mutating
operation and never written back to the stores they summarize.
"""

from dataclasses import dataclass, asdict
from typing import Dict, Any

from .storage import StorageInterface


@dataclass(frozen=True)
class SystemStats:
    """
    Global ledger statistics

    active_stakers counts every staking record, inactive ones included, and
    active_loans carries the total loaned value rather than a loan count.
    Consumers read these fields under those names, so the values stay as-is.
    """
    total_staked: int = 0
    total_loans: int = 0
    total_users: int = 0
    total_value_locked: int = 0
    active_stakers: int = 0
    active_loans: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SystemAggregator:
    """Recomputes SystemStats from the live stores"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.accounts_table = "accounts"
        self.staking_table = "staking_positions"
        self._stats = SystemStats()

    @property
    def stats(self) -> SystemStats:
        """Last computed statistics"""
        return self._stats

    def recompute(self) -> SystemStats:
        """Scan all accounts and staking records, O(users)"""
        total_staked = 0
        total_loans = 0
        accounts = self.storage.load_all(self.accounts_table)
        for account in accounts:
            total_staked += int(account['staked_amount'])
            total_loans += int(account['total_loaned'])

        self._stats = SystemStats(
            total_staked=total_staked,
            total_loans=total_loans,
            total_users=len(accounts),
            total_value_locked=total_staked,
            active_stakers=self.storage.count(self.staking_table),
            active_loans=total_loans
        )
        return self._stats
