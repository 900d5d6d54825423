"""
Loan Module

Handles staking-collateralized loan origination, simple-interest repayment
and per-user loan history. Loans are identified by their 0-based position in
the user's loan sequence; entries are never removed or reordered.
"""

from decimal import Decimal
from dataclasses import dataclass, asdict
from typing import Dict, List, Any
from enum import Enum

from .accounts import AccountManager
from .clock import NANOS_PER_SECOND
from .exceptions import (
    ValidationError, InsufficientFunds, LoanNotFound, LoanNotActive, LimitExceeded
)
from .interest import floor_amount, simple_interest, whole_periods
from .logging_config import get_logger, log_action
from .staking import StakingManager
from .storage import StorageInterface
from .transactions import TransactionType


class LoanStatus(Enum):
    """Loan lifecycle states"""
    ACTIVE = "active"          # Disbursed, awaiting repayment
    COMPLETED = "completed"    # Repaid in full
    DEFAULTED = "defaulted"    # Declared only; no transition produces it


@dataclass
class LoanRecord:
    """
    Loan taken against a staking position

    amount starts equal to principal and becomes the total repaid once the
    loan is completed. principal is kept at its disbursed value for audit.
    """
    amount: int
    principal: int
    interest_rate: Decimal
    start_time: int            # nanoseconds
    due_date: int              # nanoseconds
    collateral_amount: int     # staking amount at approval, never re-validated
    status: LoanStatus = LoanStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status == LoanStatus.ACTIVE

    def is_overdue(self, now: int) -> bool:
        """Reporting helper only; status is never changed from here"""
        return self.is_active and now > self.due_date

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result['interest_rate'] = str(self.interest_rate)
        result['status'] = self.status.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanRecord':
        return cls(
            amount=int(data['amount']),
            principal=int(data['principal']),
            interest_rate=Decimal(data['interest_rate']),
            start_time=int(data['start_time']),
            due_date=int(data['due_date']),
            collateral_amount=int(data['collateral_amount']),
            status=LoanStatus(data['status'])
        )


class LoanManager:
    """
    Manages loan lifecycle from application through repayment
    """

    def __init__(
        self,
        storage: StorageInterface,
        account_manager: AccountManager,
        staking_manager: StakingManager
    ):
        self.storage = storage
        self.account_manager = account_manager
        self.staking_manager = staking_manager
        self.clock = account_manager.clock
        self.config = account_manager.config
        self.loans_table = "loans"

        self.loan_interest_rate = Decimal(self.config.loan_interest_rate)
        self.max_loan_to_staking_ratio = Decimal(self.config.max_loan_to_staking_ratio)
        self.min_loan_amount = self.config.min_loan_amount
        self.seconds_per_period = self.config.seconds_per_period
        self.logger = get_logger("dbank.loans")

    def history(self, user_id: str) -> List[LoanRecord]:
        """Get a user's loans in application order"""
        entry = self.storage.load(self.loans_table, user_id)
        if entry is None:
            return []
        return [LoanRecord.from_dict(data) for data in entry["loans"]]

    def _save_loans(self, user_id: str, loans: List[LoanRecord]) -> None:
        self.storage.save(self.loans_table, user_id, {
            "user_id": user_id,
            "loans": [loan.to_dict() for loan in loans]
        })

    def max_loan_amount(self, staking_amount: int) -> int:
        """Largest loan a staking amount supports"""
        return floor_amount(Decimal(staking_amount) * self.max_loan_to_staking_ratio)

    def repayment_amount(self, loan: LoanRecord, now: int) -> int:
        """
        Principal plus simple interest over whole elapsed days.

        Always computed from start_time; there are no partial payments to
        checkpoint against.
        """
        elapsed_days = whole_periods(loan.start_time, now, self.seconds_per_period)
        return loan.principal + simple_interest(loan.principal, loan.interest_rate, elapsed_days)

    def apply(self, user_id: str, amount: int, term_days: int) -> int:
        """
        Apply for a loan against the user's active staking position

        Args:
            user_id: Borrower
            amount: Requested principal, at least the configured minimum
            term_days: Loan term used to compute the due date

        Returns:
            Amount disbursed to the balance
        """
        if amount < self.min_loan_amount:
            raise self.account_manager.reject(
                user_id, "apply_loan",
                ValidationError(f"Minimum loan amount is {self.min_loan_amount}")
            )
        if term_days < 0:
            raise self.account_manager.reject(
                user_id, "apply_loan", ValidationError("Loan term must not be negative")
            )

        account = self.account_manager.load_with_interest(user_id)
        position = self.staking_manager.load_active(user_id, "apply_loan")

        max_amount = self.max_loan_amount(position.amount)
        if amount > max_amount:
            raise self.account_manager.reject(
                user_id, "apply_loan",
                LimitExceeded(f"Loan amount exceeds maximum allowed: {max_amount}")
            )

        now = self.clock.now()
        loan = LoanRecord(
            amount=amount,
            principal=amount,
            interest_rate=self.loan_interest_rate,
            start_time=now,
            due_date=now + term_days * self.seconds_per_period * NANOS_PER_SECOND,
            collateral_amount=position.amount
        )

        # Loan application consumes the position, so its refreshed amount is kept.
        self.staking_manager.save_position(user_id, position)

        loans = self.history(user_id)
        loans.append(loan)
        self._save_loans(user_id, loans)
        loan_id = len(loans) - 1

        account.balance += amount
        account.total_loaned += amount
        account.loan_count += 1
        self.account_manager.commit(
            account, TransactionType.LOAN, amount,
            f"Loan #{loan_id} of {amount} tokens for {term_days} days"
        )

        log_action(
            self.logger, "info", "Loan disbursed",
            user_id=user_id, action="apply_loan", resource="loan",
            extra={"loan_id": loan_id, "collateral": position.amount, "due_date": loan.due_date}
        )
        return amount

    def repay(self, user_id: str, loan_id: int) -> int:
        """
        Repay a loan in full

        Args:
            user_id: Borrower
            loan_id: 0-based index into the user's loan sequence

        Returns:
            Total amount repaid (principal plus interest)
        """
        loans = self.history(user_id)
        if not loans:
            raise self.account_manager.reject(user_id, "repay_loan", LoanNotFound("No loans found"))
        if loan_id < 0 or loan_id >= len(loans):
            raise self.account_manager.reject(user_id, "repay_loan", LoanNotFound("Invalid loan ID"))

        loan = loans[loan_id]
        if not loan.is_active:
            raise self.account_manager.reject(user_id, "repay_loan", LoanNotActive("Loan is not active"))

        account = self.account_manager.load_with_interest(user_id)
        total_repayment = self.repayment_amount(loan, self.clock.now())
        if account.balance < total_repayment:
            raise self.account_manager.reject(
                user_id, "repay_loan", InsufficientFunds("Insufficient balance")
            )

        loan.status = LoanStatus.COMPLETED
        loan.amount = total_repayment
        self._save_loans(user_id, loans)

        account.balance -= total_repayment
        self.account_manager.commit(
            account, TransactionType.REPAYMENT, total_repayment,
            f"Repaid loan #{loan_id}: {total_repayment} tokens"
        )
        return total_repayment
