"""
Token staking positions for StakeFlow.

Each account holds at most one position.  Per account the state machine is

    Empty ──open──▶ Active ──close──▶ Empty
                     │  ▲
                     └──┘ claim

  * **open**  — locks ``amount`` for ``duration`` days.  Requires a
    positive amount, ``duration <= max_staking_period`` and no active
    position.  The deposit is pulled in through the value collaborator.
  * **claim** — pays the position's reward once per cooldown window.
    The principal is untouched.
  * **close** — after the full lock has elapsed, pays principal + reward
    as a single transfer and deletes the position.

Rewards come from :class:`~stakeflow_core.rewards.RewardEngine` using the
current parameters and the position's original terms.

Bookkeeping is always updated *before* the external transfer is
requested.  An optional ``precommit`` check runs between the two; if it
or the transfer fails the previous state is restored and the error
(:class:`~stakeflow_core.errors.TransferFailed` or
:class:`~stakeflow_core.errors.InvariantViolation`) is raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from stakeflow_core.errors import (
    CooldownActive,
    ExceedsMaxDuration,
    InvariantViolation,
    NoActiveStake,
    NoRewardsAvailable,
    PeriodIncomplete,
    StakingInProgress,
    TransferFailed,
    ZeroAmount,
)
from stakeflow_core.guard import ReentrancyGuard
from stakeflow_core.precision import TIME_UNIT, checked_add, checked_mul, checked_sub
from stakeflow_core.rewards import RewardEngine

logger = logging.getLogger("stakeflow.staking")


# ── StakingPosition ─────────────────────────────────────────────────────

@dataclass
class StakingPosition:
    """An account's single active token stake."""
    account: str
    deposit_amount: int         # principal locked, > 0
    staking_period: int         # days chosen at open time
    initiation_timestamp: int
    last_reward_timestamp: int
    rewards_claimed: int = 0    # paid out by claim() so far

    @property
    def unlock_timestamp(self) -> int:
        return self.initiation_timestamp + checked_mul(self.staking_period, TIME_UNIT)

    def is_unlocked(self, now: int) -> bool:
        return now >= self.unlock_timestamp

    def next_claim_timestamp(self, cooldown: int) -> int:
        return self.last_reward_timestamp + cooldown

    def to_dict(self, now: Optional[int] = None) -> dict:
        d = {
            "account": self.account,
            "deposit_amount": self.deposit_amount,
            "staking_period": self.staking_period,
            "initiation_timestamp": self.initiation_timestamp,
            "last_reward_timestamp": self.last_reward_timestamp,
            "unlock_timestamp": self.unlock_timestamp,
            "rewards_claimed": self.rewards_claimed,
        }
        if now is not None:
            d["unlocked"] = self.is_unlocked(now)
        return d


def request_transfer(transfer: Any, method: str, account: str, amount: int) -> None:
    """
    Ask the value collaborator to move *amount* and raise on refusal.

    Collaborator exceptions are chained into ``TransferFailed`` so callers
    only need to handle one failure type for rollback.
    """
    try:
        ok = getattr(transfer, method)(account, amount)
    except Exception as exc:
        raise TransferFailed(f"{method} of {amount} for {account} raised: {exc}") from exc
    if not ok:
        raise TransferFailed(f"{method} of {amount} for {account} was refused")


# ── StakePositionLedger ─────────────────────────────────────────────────

class StakePositionLedger:
    """
    Owns every token staking position.

    Collaborators:
      ``params``   — live :class:`~stakeflow_core.parameters.ParameterStore`
      ``transfer`` — value collaborator (``transfer_in`` / ``transfer_out``)
      ``guard``    — shared :class:`~stakeflow_core.guard.ReentrancyGuard`
    """

    def __init__(
        self,
        params: Any,
        transfer: Any,
        rewards: Optional[RewardEngine] = None,
        guard: Optional[ReentrancyGuard] = None,
    ) -> None:
        self.params = params
        self.transfer = transfer
        self.rewards = rewards if rewards is not None else RewardEngine(params)
        self.guard = guard if guard is not None else ReentrancyGuard()
        self.positions: dict[str, StakingPosition] = {}
        self.total_staked: int = 0
        self.total_deposited: int = 0
        self.total_principal_returned: int = 0
        self.total_rewards_paid: int = 0
        # called after bookkeeping, before any transfer; may raise InvariantViolation
        self.precommit: Optional[Callable[[], None]] = None

    # ── helpers ─────────────────────────────────────────────────────

    def _precommit(self) -> None:
        if self.precommit is not None:
            self.precommit()

    def _require_position(self, account: str) -> StakingPosition:
        position = self.positions.get(account)
        if position is None:
            raise NoActiveStake(f"No active stake for {account}")
        return position

    def _totals(self) -> tuple[int, int, int, int]:
        return (self.total_staked, self.total_deposited,
                self.total_principal_returned, self.total_rewards_paid)

    def _restore_totals(self, totals: tuple[int, int, int, int]) -> None:
        (self.total_staked, self.total_deposited,
         self.total_principal_returned, self.total_rewards_paid) = totals

    # ── core operations ─────────────────────────────────────────────

    def open(self, account: str, amount: int, duration: int, now: int) -> StakingPosition:
        """Lock *amount* for *duration* days starting at *now*."""
        with self.guard.enter(account):
            if amount <= 0:
                raise ZeroAmount("Stake amount must be positive")
            if duration < 0 or duration > self.params.max_staking_period:
                raise ExceedsMaxDuration(
                    f"Duration {duration} outside 0..{self.params.max_staking_period}"
                )
            if account in self.positions:
                raise StakingInProgress(f"{account} already has an active stake")

            checked_add(now, checked_mul(duration, TIME_UNIT))
            position = StakingPosition(
                account=account,
                deposit_amount=amount,
                staking_period=duration,
                initiation_timestamp=now,
                last_reward_timestamp=now,
            )
            staked = checked_add(self.total_staked, amount)
            deposited = checked_add(self.total_deposited, amount)

            totals = self._totals()
            self.positions[account] = position
            self.total_staked, self.total_deposited = staked, deposited
            try:
                self._precommit()
                request_transfer(self.transfer, "transfer_in", account, amount)
            except (TransferFailed, InvariantViolation) as exc:
                del self.positions[account]
                self._restore_totals(totals)
                logger.warning(f"Open rolled back for {account}: {exc}")
                raise

            logger.info(f"Opened stake for {account}: {amount} for {duration} days")
            return position

    def claim(self, account: str, now: int) -> int:
        """Pay the position's reward; returns the amount paid."""
        with self.guard.enter(account):
            position = self._require_position(account)
            ready_at = position.next_claim_timestamp(self.params.reward_claim_cooldown)
            if now < ready_at:
                raise CooldownActive(f"Next claim for {account} allowed at {ready_at}")
            reward = self.rewards.reward_for(position)
            if reward <= 0:
                raise NoRewardsAvailable(f"No rewards available for {account}")

            claimed = checked_add(position.rewards_claimed, reward)
            paid = checked_add(self.total_rewards_paid, reward)

            previous = (position.last_reward_timestamp, position.rewards_claimed)
            totals = self._totals()
            position.last_reward_timestamp = now
            position.rewards_claimed = claimed
            self.total_rewards_paid = paid
            try:
                self._precommit()
                request_transfer(self.transfer, "transfer_out", account, reward)
            except (TransferFailed, InvariantViolation) as exc:
                position.last_reward_timestamp, position.rewards_claimed = previous
                self._restore_totals(totals)
                logger.warning(f"Claim rolled back for {account}: {exc}")
                raise

            logger.info(f"Claimed {reward} for {account}")
            return reward

    def close(self, account: str, now: int) -> int:
        """Return principal + reward once unlocked; returns the total paid."""
        with self.guard.enter(account):
            position = self._require_position(account)
            if not position.is_unlocked(now):
                raise PeriodIncomplete(
                    f"Stake for {account} unlocks at {position.unlock_timestamp}"
                )
            reward = self.rewards.reward_for(position)
            payout = checked_add(position.deposit_amount, reward)

            staked = checked_sub(self.total_staked, position.deposit_amount)
            returned = checked_add(self.total_principal_returned, position.deposit_amount)
            paid = checked_add(self.total_rewards_paid, reward)

            totals = self._totals()
            del self.positions[account]
            self.total_staked = staked
            self.total_principal_returned = returned
            self.total_rewards_paid = paid
            try:
                self._precommit()
                request_transfer(self.transfer, "transfer_out", account, payout)
            except (TransferFailed, InvariantViolation) as exc:
                self.positions[account] = position
                self._restore_totals(totals)
                logger.warning(f"Close rolled back for {account}: {exc}")
                raise

            logger.info(
                f"Closed stake for {account}: principal {position.deposit_amount} "
                f"+ reward {reward}"
            )
            return payout

    # ── queries ─────────────────────────────────────────────────────

    def get_position(self, account: str) -> Optional[StakingPosition]:
        return self.positions.get(account)

    def has_position(self, account: str) -> bool:
        return account in self.positions

    def get_stake_amount(self, account: str) -> int:
        position = self.positions.get(account)
        return position.deposit_amount if position is not None else 0

    def compute_reward(self, account: str) -> int:
        """Reward the account's position would pay now (0 without a position)."""
        position = self.positions.get(account)
        if position is None:
            return 0
        return self.rewards.reward_for(position)

    def get_summary(self) -> dict:
        return {
            "active_positions": len(self.positions),
            "total_staked": self.total_staked,
            "total_deposited": self.total_deposited,
            "total_principal_returned": self.total_principal_returned,
            "total_rewards_paid": self.total_rewards_paid,
        }
