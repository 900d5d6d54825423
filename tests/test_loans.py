"""
Test suite for loans module

Tests loan origination against staking collateral, simple-interest repayment
and loan history bookkeeping.
"""

import pytest
from decimal import Decimal

from dbank.bank import BankingSystem
from dbank.clock import ManualClock, NANOS_PER_SECOND
from dbank.config import DBankConfig
from dbank.exceptions import (
    ValidationError, InsufficientFunds, StakingNotActive,
    LoanNotFound, LoanNotActive, LimitExceeded
)
from dbank.loans import LoanRecord, LoanStatus
from dbank.storage import InMemoryStorage
from dbank.transactions import TransactionType


START = 1_700_000_000 * NANOS_PER_SECOND
DAY_NS = 86400 * NANOS_PER_SECOND


class TestLoanRecord:
    """Test LoanRecord functionality"""

    def make_loan(self, **overrides):
        data = dict(
            amount=700, principal=700, interest_rate=Decimal('0.12'),
            start_time=START, due_date=START + 30 * DAY_NS, collateral_amount=1000
        )
        data.update(overrides)
        return LoanRecord(**data)

    def test_new_loan_is_active(self):
        loan = self.make_loan()
        assert loan.status == LoanStatus.ACTIVE
        assert loan.is_active

    def test_is_overdue(self):
        loan = self.make_loan()
        assert not loan.is_overdue(START + 30 * DAY_NS)
        assert loan.is_overdue(START + 30 * DAY_NS + 1)
        # Overdue is only reported; the status stays active
        assert loan.status == LoanStatus.ACTIVE

    def test_completed_loan_is_never_overdue(self):
        loan = self.make_loan(status=LoanStatus.COMPLETED)
        assert not loan.is_overdue(START + 365 * DAY_NS)

    def test_dict_form(self):
        loan = self.make_loan()
        data = loan.to_dict()
        assert data['status'] == "active"
        assert data['interest_rate'] == "0.12"
        assert LoanRecord.from_dict(data) == loan


class TestLoanManager:
    """Test loan application and repayment"""

    def setup_method(self):
        self.clock = ManualClock(start_ns=START)
        self.system = BankingSystem(
            storage=InMemoryStorage(), clock=self.clock, config=DBankConfig(_env_file=None)
        )
        self.accounts = self.system.account_manager
        self.loans = self.system.loan_manager

    def stake(self, user_id="alice", deposit=1000, amount=1000):
        self.system.top_up(user_id, deposit)
        self.system.stake_tokens(user_id, amount)

    def test_apply_for_loan(self):
        self.stake()
        assert self.system.apply_for_loan("alice", 700, 30) == 700

        account = self.accounts.get_account("alice")
        assert account.balance == 700
        assert account.total_loaned == 700
        assert account.loan_count == 1

        loans = self.system.get_loan_history("alice")
        assert len(loans) == 1
        loan = loans[0]
        assert loan.amount == 700
        assert loan.principal == 700
        assert loan.interest_rate == Decimal('0.12')
        assert loan.start_time == START
        assert loan.due_date == START + 30 * DAY_NS
        assert loan.collateral_amount == 1000
        assert loan.is_active

        history = self.system.get_transaction_history("alice")
        assert history[-1].tx_type == TransactionType.LOAN
        assert history[-1].amount == 700

    def test_zero_term_is_due_immediately(self):
        self.stake()
        self.system.apply_for_loan("alice", 500, 0)
        loan = self.system.get_loan_history("alice")[0]
        assert loan.due_date == loan.start_time

    def test_negative_term_rejected(self):
        self.stake()
        with pytest.raises(ValidationError, match="Loan term must not be negative"):
            self.system.apply_for_loan("alice", 500, -1)
        assert self.system.get_loan_history("alice") == []

    def test_below_minimum(self):
        self.stake()
        with pytest.raises(ValidationError, match="Minimum loan amount is 500"):
            self.system.apply_for_loan("alice", 499, 30)

    def test_without_staking(self):
        self.system.top_up("alice", 5000)
        with pytest.raises(StakingNotActive, match="No active staking"):
            self.system.apply_for_loan("alice", 500, 30)
        assert self.accounts.get_account("alice").loan_count == 0

    def test_after_unstaking(self):
        self.stake()
        self.system.unstake_tokens("alice")
        with pytest.raises(StakingNotActive, match="Staking is not active"):
            self.system.apply_for_loan("alice", 500, 30)

    def test_exceeds_collateral_ratio(self):
        self.stake()
        with pytest.raises(LimitExceeded, match="Loan amount exceeds maximum allowed: 700"):
            self.system.apply_for_loan("alice", 701, 30)
        assert self.accounts.get_account("alice").balance == 0

    def test_limit_uses_refreshed_staking_amount(self):
        """Collateral includes rewards compounded up to the application"""
        self.stake()
        self.clock.advance(days=1)

        with pytest.raises(LimitExceeded, match="maximum allowed: 756"):
            self.system.apply_for_loan("alice", 757, 30)

        self.system.apply_for_loan("alice", 756, 30)
        loan = self.system.get_loan_history("alice")[0]
        assert loan.collateral_amount == 1080

        # The refreshed position is persisted by the application
        position = self.system.staking_manager.get_position("alice")
        assert position.amount == 1080
        assert position.last_reward_time == self.clock.now()

    def test_rejected_application_keeps_stored_position(self):
        self.stake()
        self.clock.advance(days=1)
        with pytest.raises(LimitExceeded):
            self.system.apply_for_loan("alice", 5000, 30)
        assert self.system.staking_manager.get_position("alice").amount == 1000

    def test_second_loan_against_same_position(self):
        """Outstanding loans do not reduce the collateral limit"""
        self.stake()
        self.system.apply_for_loan("alice", 700, 30)
        self.system.apply_for_loan("alice", 700, 30)

        account = self.accounts.get_account("alice")
        assert account.loan_count == 2
        assert account.total_loaned == 1400
        assert len(self.system.get_loan_history("alice")) == 2

    def test_max_loan_amount_floors(self):
        assert self.loans.max_loan_amount(1001) == 700
        assert self.loans.max_loan_amount(1080) == 756

    def test_repayment_amount_counts_whole_days(self):
        self.stake()
        self.system.apply_for_loan("alice", 700, 30)
        loan = self.system.get_loan_history("alice")[0]

        assert self.loans.repayment_amount(loan, START) == 700
        assert self.loans.repayment_amount(loan, START + DAY_NS - 1) == 700
        assert self.loans.repayment_amount(loan, START + DAY_NS * 5 // 2) == 868
        assert self.loans.repayment_amount(loan, START + 10 * DAY_NS) == 1540

    def test_repay_loan(self):
        self.stake(deposit=2000)
        self.system.apply_for_loan("alice", 700, 30)
        self.clock.advance(days=2.5)

        before = self.accounts.apply_interest(
            self.accounts.get_account("alice"), self.clock.now()
        ).balance
        assert self.system.repay_loan("alice", 0) == 868

        assert self.accounts.get_account("alice").balance == before - 868
        loan = self.system.get_loan_history("alice")[0]
        assert loan.status == LoanStatus.COMPLETED
        assert loan.amount == 868
        assert loan.principal == 700

        history = self.system.get_transaction_history("alice")
        assert history[-1].tx_type == TransactionType.REPAYMENT
        assert history[-1].amount == 868

    def test_repay_insufficient_balance(self):
        self.stake()
        self.system.apply_for_loan("alice", 700, 30)
        self.clock.advance(days=10)

        # 700 * 1.05^10 = 1140 on hand, 1540 due
        with pytest.raises(InsufficientFunds, match="Insufficient balance"):
            self.system.repay_loan("alice", 0)
        assert self.system.get_loan_history("alice")[0].is_active

        assert self.system.top_up("alice", 400) == 1540
        assert self.system.repay_loan("alice", 0) == 1540
        assert self.system.get_balance("alice") == 0

    def test_repay_without_loans(self):
        with pytest.raises(LoanNotFound, match="No loans found"):
            self.system.repay_loan("alice", 0)

    @pytest.mark.parametrize("loan_id", [1, 5, -1])
    def test_repay_invalid_loan_id(self, loan_id):
        self.stake()
        self.system.apply_for_loan("alice", 500, 30)
        with pytest.raises(LoanNotFound, match="Invalid loan ID"):
            self.system.repay_loan("alice", loan_id)

    def test_repay_twice(self):
        self.stake()
        self.system.apply_for_loan("alice", 500, 30)
        self.system.repay_loan("alice", 0)
        with pytest.raises(LoanNotActive, match="Loan is not active"):
            self.system.repay_loan("alice", 0)

    def test_loan_ids_are_per_user(self):
        self.stake("alice")
        self.stake("bob")
        self.system.apply_for_loan("alice", 500, 30)
        self.system.apply_for_loan("bob", 600, 30)
        self.system.apply_for_loan("alice", 500, 30)

        assert [loan.principal for loan in self.system.get_loan_history("alice")] == [500, 500]
        assert [loan.principal for loan in self.system.get_loan_history("bob")] == [600]
        assert self.system.repay_loan("bob", 0) == 600

    def test_loan_history_read_does_not_create_account(self):
        assert self.system.get_loan_history("nobody") == []
        assert self.accounts.get_account("nobody") is None
