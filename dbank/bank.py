"""
Banking System Module

Wires the ledger components together and exposes the public operations.
Every operation runs to completion before the next one starts; callers pass
an already-resolved user key.
"""

from decimal import Decimal
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Any

from .accounts import AccountManager, AccountRecord
from .clock import Clock, SystemClock
from .config import DBankConfig, get_config
from .loans import LoanManager, LoanRecord
from .logging_config import get_logger, log_action
from .reporting import SystemAggregator, SystemStats
from .snapshot import Snapshot, SnapshotManager
from .staking import StakingManager, StakingPosition
from .storage import StorageInterface, InMemoryStorage
from .transactions import TransactionLog, TransactionRecord


@dataclass(frozen=True)
class SystemConfig:
    """Fixed business constants reported to clients"""
    interest_rate: Decimal
    staking_reward_rate: Decimal
    min_staking_amount: int
    min_loan_amount: int
    max_loan_to_staking_ratio: Decimal
    loan_interest_rate: Decimal

    @classmethod
    def from_settings(cls, settings: DBankConfig) -> 'SystemConfig':
        return cls(
            interest_rate=Decimal(settings.interest_rate),
            staking_reward_rate=Decimal(settings.staking_reward_rate),
            min_staking_amount=settings.min_staking_amount,
            min_loan_amount=settings.min_loan_amount,
            max_loan_to_staking_ratio=Decimal(settings.max_loan_to_staking_ratio),
            loan_interest_rate=Decimal(settings.loan_interest_rate)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {key: str(value) if isinstance(value, Decimal) else value
                for key, value in asdict(self).items()}


class BankingSystem:
    """Ledger engine with all components initialized"""

    def __init__(
        self,
        storage: Optional[StorageInterface] = None,
        clock: Optional[Clock] = None,
        config: Optional[DBankConfig] = None
    ):
        self.storage = storage or InMemoryStorage()
        self.clock = clock or SystemClock()
        self.config = config or get_config()

        self.transaction_log = TransactionLog(self.storage, self.clock)
        self.aggregator = SystemAggregator(self.storage)
        self.account_manager = AccountManager(
            self.storage, self.clock, self.transaction_log, self.aggregator, self.config
        )
        self.staking_manager = StakingManager(self.storage, self.account_manager)
        self.loan_manager = LoanManager(self.storage, self.account_manager, self.staking_manager)
        self.snapshot_manager = SnapshotManager(self.storage)

        self.system_config = SystemConfig.from_settings(self.config)
        self.logger = get_logger("dbank.system")

    # Account operations

    def get_balance(self, user_id: str) -> int:
        return self.account_manager.get_balance(user_id)

    def top_up(self, user_id: str, amount: int) -> int:
        return self.account_manager.deposit(user_id, amount)

    def withdraw(self, user_id: str, amount: int) -> int:
        return self.account_manager.withdraw(user_id, amount)

    def get_account_info(self, user_id: str) -> AccountRecord:
        return self.account_manager.get_account_info(user_id)

    # Staking operations

    def stake_tokens(self, user_id: str, amount: int) -> int:
        return self.staking_manager.stake(user_id, amount)

    def unstake_tokens(self, user_id: str) -> int:
        return self.staking_manager.unstake(user_id)

    def get_staking_info(self, user_id: str) -> Optional[StakingPosition]:
        return self.staking_manager.get_info(user_id)

    # Loan operations

    def apply_for_loan(self, user_id: str, amount: int, term_days: int) -> int:
        return self.loan_manager.apply(user_id, amount, term_days)

    def repay_loan(self, user_id: str, loan_id: int) -> int:
        return self.loan_manager.repay(user_id, loan_id)

    def get_loan_history(self, user_id: str) -> List[LoanRecord]:
        return self.loan_manager.history(user_id)

    # History and system information

    def get_transaction_history(self, user_id: str) -> List[TransactionRecord]:
        return self.transaction_log.history(user_id)

    def get_system_config(self) -> SystemConfig:
        return self.system_config

    def get_system_stats(self) -> SystemStats:
        return self.aggregator.stats

    # Lifecycle

    def serialize(self) -> Snapshot:
        """Freeze all stores; call only when no request is in flight"""
        return self.snapshot_manager.freeze()

    def deserialize(self, snapshot: Optional[Snapshot] = None) -> None:
        """
        Restore all stores, then rebuild what is derived from them: the
        transaction id counter and the system stats.
        """
        self.snapshot_manager.restore(snapshot)
        next_id = self.transaction_log.reseed()
        stats = self.aggregator.recompute()

        log_action(
            self.logger, "info", "Ledger state restored",
            action="deserialize", resource="system",
            extra={"next_transaction_id": next_id, "total_users": stats.total_users}
        )

    def save_snapshot(self, durable: StorageInterface) -> Snapshot:
        """Serialize and write the snapshot to a durable backend"""
        snapshot = self.serialize()
        self.snapshot_manager.save(snapshot, durable)
        return snapshot

    def load_snapshot(self, durable: StorageInterface) -> bool:
        """Restore from a durable backend; False when it holds no snapshot"""
        snapshot = self.snapshot_manager.load(durable)
        if snapshot is None:
            return False
        self.deserialize(snapshot)
        return True
