"""
Staking Module

Handles per-user staking positions and their compounding rewards. A user
holds at most one position; a new stake overwrites a finished one. Rewards
are compounded lazily whenever a position is read or consumed.
"""

from decimal import Decimal
from dataclasses import dataclass, asdict, replace
from typing import Dict, Optional, Any

from .accounts import AccountManager
from .exceptions import ValidationError, InsufficientFunds, StakingNotActive
from .interest import elapsed_periods, compound
from .logging_config import get_logger, log_action
from .storage import StorageInterface
from .transactions import TransactionType


@dataclass
class StakingPosition:
    """
    Staking position for one user

    amount includes every reward compounded up to last_reward_time.
    principal and start_time are fixed when the position is opened.
    """
    amount: int
    principal: int
    start_time: int           # nanoseconds
    last_reward_time: int     # compounding base, nanoseconds
    reward_rate: Decimal
    is_active: bool = True

    @property
    def earned(self) -> int:
        """Reward accrued so far"""
        return self.amount - self.principal

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result['reward_rate'] = str(self.reward_rate)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StakingPosition':
        return cls(
            amount=int(data['amount']),
            principal=int(data['principal']),
            start_time=int(data['start_time']),
            last_reward_time=int(data['last_reward_time']),
            reward_rate=Decimal(data['reward_rate']),
            is_active=bool(data['is_active'])
        )


class StakingManager:
    """
    Manages staking positions against the account ledger
    """

    def __init__(self, storage: StorageInterface, account_manager: AccountManager):
        self.storage = storage
        self.account_manager = account_manager
        self.clock = account_manager.clock
        self.config = account_manager.config
        self.staking_table = "staking_positions"

        self.reward_rate = Decimal(self.config.staking_reward_rate)
        self.min_staking_amount = self.config.min_staking_amount
        self.seconds_per_period = self.config.seconds_per_period
        self.logger = get_logger("dbank.staking")

    def get_position(self, user_id: str) -> Optional[StakingPosition]:
        """Stored position exactly as last written"""
        data = self.storage.load(self.staking_table, user_id)
        if data is not None:
            return StakingPosition.from_dict(data)
        return None

    def save_position(self, user_id: str, position: StakingPosition) -> None:
        self.storage.save(self.staking_table, user_id, position.to_dict())

    def refresh(self, position: StakingPosition, now: int) -> StakingPosition:
        """Return a copy with rewards compounded up to now (inactive positions are frozen)"""
        if not position.is_active:
            return replace(position)

        periods = elapsed_periods(position.last_reward_time, now, self.seconds_per_period)
        if periods <= 0:
            return replace(position)
        return replace(
            position,
            amount=compound(position.amount, position.reward_rate, periods),
            last_reward_time=now
        )

    def get_info(self, user_id: str) -> Optional[StakingPosition]:
        """
        Reward-refreshed view of a user's position.

        This is a pure read: the stored position keeps its previous amount
        and compounding base.
        """
        position = self.get_position(user_id)
        if position is None:
            return None
        return self.refresh(position, self.clock.now())

    def load_active(self, user_id: str, action: str) -> StakingPosition:
        """Refreshed active position, or raise StakingNotActive"""
        position = self.get_position(user_id)
        if position is None:
            raise self.account_manager.reject(user_id, action, StakingNotActive("No active staking"))
        if not position.is_active:
            raise self.account_manager.reject(user_id, action, StakingNotActive("Staking is not active"))
        return self.refresh(position, self.clock.now())

    def stake(self, user_id: str, amount: int) -> int:
        """
        Stake tokens from the account balance

        Args:
            user_id: Account owner
            amount: Amount to stake, at least the configured minimum

        Returns:
            New balance
        """
        if amount < self.min_staking_amount:
            raise self.account_manager.reject(
                user_id, "stake",
                ValidationError(f"Minimum staking amount is {self.min_staking_amount}")
            )

        account = self.account_manager.load_with_interest(user_id)
        if amount > account.balance:
            raise self.account_manager.reject(user_id, "stake", InsufficientFunds("Insufficient balance"))

        existing = self.get_position(user_id)
        if existing is not None and existing.is_active:
            raise self.account_manager.reject(user_id, "stake", ValidationError("Staking already active"))

        now = self.clock.now()
        position = StakingPosition(
            amount=amount,
            principal=amount,
            start_time=now,
            last_reward_time=now,
            reward_rate=self.reward_rate,
            is_active=True
        )
        self.save_position(user_id, position)

        account.balance -= amount
        account.staked_amount += amount
        self.account_manager.commit(account, TransactionType.STAKE, amount, f"Staked {amount} tokens")
        return account.balance

    def unstake(self, user_id: str) -> int:
        """
        Close the user's position and return principal plus rewards

        Outstanding loans are not checked: a loan's collateral is a snapshot
        taken at approval and is never re-validated.

        Returns:
            Amount credited back to the balance
        """
        position = self.load_active(user_id, "unstake")
        account = self.account_manager.load_with_interest(user_id)

        final_amount = position.amount
        earned = final_amount - position.principal

        position.is_active = False
        self.save_position(user_id, position)

        account.balance += final_amount
        account.staked_amount -= position.principal
        account.total_earned_staking += earned
        self.account_manager.commit(
            account, TransactionType.UNSTAKE, final_amount,
            f"Unstaked {final_amount} tokens (earned {earned})"
        )

        log_action(
            self.logger, "info", "Staking position closed",
            user_id=user_id, action="unstake", resource="staking",
            extra={"principal": position.principal, "earned": earned}
        )
        return final_amount
