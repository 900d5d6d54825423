"""
Account Ledger Module

Owns per-user account records: balance, interest checkpoint and the
aggregate counters the staking and loan modules maintain. Accounts are
created lazily on first reference and never deleted.
"""

from decimal import Decimal
from dataclasses import dataclass, asdict, replace
from typing import Dict, Optional, Any

from .clock import Clock
from .config import DBankConfig, get_config
from .exceptions import LedgerError, ValidationError, InsufficientFunds
from .interest import elapsed_periods, compound
from .logging_config import get_logger, log_action
from .reporting import SystemAggregator
from .storage import StorageInterface
from .transactions import TransactionLog, TransactionRecord, TransactionType


@dataclass
class AccountRecord:
    """
    Ledger account for one user key

    staked_amount mirrors the principal currently staked, never rewards.
    loan_count counts loans ever taken and is never decremented.
    """
    user_id: str
    balance: int = 0
    staked_amount: int = 0
    total_earned_staking: int = 0
    total_loaned: int = 0
    loan_count: int = 0
    last_interest_applied: int = 0     # nanoseconds
    transaction_count: int = 0
    is_active: bool = True             # reserved for soft deactivation

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AccountRecord':
        return cls(
            user_id=data['user_id'],
            balance=int(data['balance']),
            staked_amount=int(data['staked_amount']),
            total_earned_staking=int(data['total_earned_staking']),
            total_loaned=int(data['total_loaned']),
            loan_count=int(data['loan_count']),
            last_interest_applied=int(data['last_interest_applied']),
            transaction_count=int(data['transaction_count']),
            is_active=bool(data.get('is_active', True))
        )


class AccountManager:
    """
    Manages account lifecycle, interest accrual, deposits and withdrawals.

    Mutating operations load the account with pending interest applied,
    validate, and only then write. A rejected operation leaves the stores
    untouched apart from lazy account creation.
    """

    def __init__(
        self,
        storage: StorageInterface,
        clock: Clock,
        transaction_log: TransactionLog,
        aggregator: SystemAggregator,
        config: Optional[DBankConfig] = None
    ):
        self.storage = storage
        self.clock = clock
        self.transaction_log = transaction_log
        self.aggregator = aggregator
        self.config = config or get_config()
        self.accounts_table = "accounts"

        self.interest_rate = Decimal(self.config.interest_rate)
        self.seconds_per_period = self.config.seconds_per_period
        self.logger = get_logger("dbank.accounts")

    def get_account(self, user_id: str) -> Optional[AccountRecord]:
        """Get account by user key without creating it"""
        data = self.storage.load(self.accounts_table, user_id)
        if data is not None:
            return AccountRecord.from_dict(data)
        return None

    def get_or_create(self, user_id: str) -> AccountRecord:
        """Get account by user key, creating a zeroed one on first sight"""
        account = self.get_account(user_id)
        if account is not None:
            return account

        account = AccountRecord(user_id=user_id, last_interest_applied=self.clock.now())
        self.save_account(account)
        self.aggregator.recompute()

        log_action(
            self.logger, "info", "Account created",
            user_id=user_id, action="create_account", resource="account"
        )
        return account

    def apply_interest(self, account: AccountRecord, now: int) -> AccountRecord:
        """
        Return a copy of the account with interest applied up to now.

        Interest compounds over real-valued periods. The checkpoint only
        moves when interest was actually computed on a positive balance.
        """
        periods = elapsed_periods(account.last_interest_applied, now, self.seconds_per_period)
        if periods > 0 and account.balance > 0:
            return replace(
                account,
                balance=compound(account.balance, self.interest_rate, periods),
                last_interest_applied=now
            )
        return replace(account)

    def load_with_interest(self, user_id: str) -> AccountRecord:
        """Get or create the account and apply pending interest (not saved)"""
        account = self.get_or_create(user_id)
        return self.apply_interest(account, self.clock.now())

    def save_account(self, account: AccountRecord) -> None:
        """Save account to storage"""
        self.storage.save(self.accounts_table, account.user_id, account.to_dict())

    def commit(
        self,
        account: AccountRecord,
        tx_type: TransactionType,
        amount: int,
        description: str
    ) -> TransactionRecord:
        """
        Finish a successful mutating operation: count and save the account,
        append its transaction and refresh system stats.
        """
        account.transaction_count += 1
        self.save_account(account)
        record = self.transaction_log.append(account.user_id, tx_type, amount, description)
        self.aggregator.recompute()

        log_action(
            self.logger, "info", description,
            user_id=account.user_id, action=tx_type.value, resource="account",
            extra={"amount": amount, "balance": account.balance, "transaction_id": record.id}
        )
        return record

    def reject(self, user_id: str, action: str, error: LedgerError) -> LedgerError:
        """Log a rejected operation and hand the error back for raising"""
        log_action(
            self.logger, "warning", f"{action} rejected: {error}",
            user_id=user_id, action=action, resource="account",
            extra={"error": type(error).__name__}
        )
        return error

    def get_balance(self, user_id: str) -> int:
        """Balance after interest; the accrued interest is persisted"""
        return self.get_account_info(user_id).balance

    def get_account_info(self, user_id: str) -> AccountRecord:
        """Full account record after interest; the accrued interest is persisted"""
        account = self.load_with_interest(user_id)
        self.save_account(account)
        return account

    def deposit(self, user_id: str, amount: int) -> int:
        """
        Deposit tokens into an account

        Args:
            user_id: Account owner
            amount: Amount to add, must be positive

        Returns:
            New balance
        """
        if amount <= 0:
            raise self.reject(user_id, "deposit", ValidationError("Amount must be greater than 0"))

        account = self.load_with_interest(user_id)
        account.balance += amount
        self.commit(account, TransactionType.DEPOSIT, amount, f"Deposited {amount} tokens")
        return account.balance

    def withdraw(self, user_id: str, amount: int) -> int:
        """
        Withdraw tokens from an account

        The funds check runs after pending interest is applied, so interest
        earned up to this call can be withdrawn.

        Returns:
            New balance
        """
        if amount <= 0:
            raise self.reject(user_id, "withdraw", ValidationError("Amount must be greater than 0"))

        account = self.load_with_interest(user_id)
        if amount > account.balance:
            raise self.reject(user_id, "withdraw", InsufficientFunds("Insufficient funds"))

        account.balance -= amount
        self.commit(account, TransactionType.WITHDRAWAL, amount, f"Withdrew {amount} tokens")
        return account.balance
