"""
Reward computation for StakeFlow token staking.

Dynamic Boost
─────────────
The boost rewards longer locks with a linear ramp that is clamped at the
maximum allowed lock:

    boost = min(duration × coefficient × P / max_period,  coefficient × P)

where P is BOOST_PRECISION (1e6).  A duration of 0 earns 0; any duration
at or beyond ``max_period`` earns the cap.  Clamping (rather than
extrapolating) keeps already-open positions bounded if ``max_period`` is
later lowered.  A ``max_period`` of 0 puts every duration at the cap.

Base Reward
───────────
    reward = deposit × period × yield% × boost / (100 × P)

``period`` is used directly as yield-bearing units (no /365 annual
normalization).  Everything is integer arithmetic: all factors are
multiplied first and the single division truncates.

The reward is the *full-term* amount for the position's chosen lock; it
does not depend on the time elapsed since opening.
"""

from __future__ import annotations

from typing import Any

from stakeflow_core.precision import (
    BOOST_PRECISION,
    PERCENT,
    checked,
    checked_mul,
)


def dynamic_boost(
    lock_duration: int,
    coefficient: int,
    max_period: int,
    precision: int = BOOST_PRECISION,
) -> int:
    """Fixed-point boost multiplier in ``[0, coefficient × precision]``."""
    cap = checked_mul(coefficient, precision)
    if max_period <= 0:
        return cap
    ramp = checked_mul(lock_duration, coefficient, precision) // checked(max_period)
    return min(ramp, cap)


def base_reward(
    deposit_amount: int,
    staking_period: int,
    annual_yield_percentage: int,
    boost_multiplier: int,
    precision: int = BOOST_PRECISION,
) -> int:
    """Full-term reward for a deposit, truncated toward zero."""
    numerator = checked_mul(
        deposit_amount, staking_period, annual_yield_percentage, boost_multiplier,
    )
    denominator = checked_mul(PERCENT, precision)
    return numerator // denominator


class RewardEngine:
    """
    Binds the pure formulas to the live parameter values.

    ``params`` is anything exposing ``max_staking_period``,
    ``reward_boost_coefficient`` and ``annual_yield_percentage``
    (normally a :class:`~stakeflow_core.parameters.ParameterStore`).
    """

    def __init__(self, params: Any, precision: int = BOOST_PRECISION) -> None:
        self.params = params
        self.precision = precision

    def boost_for(self, lock_duration: int) -> int:
        return dynamic_boost(
            lock_duration,
            self.params.reward_boost_coefficient,
            self.params.max_staking_period,
            self.precision,
        )

    def reward_for_terms(self, deposit_amount: int, staking_period: int) -> int:
        return base_reward(
            deposit_amount,
            staking_period,
            self.params.annual_yield_percentage,
            self.boost_for(staking_period),
            self.precision,
        )

    def reward_for(self, position: Any) -> int:
        """Reward for a position using the *current* parameters."""
        return self.reward_for_terms(position.deposit_amount, position.staking_period)

    def quote(self, deposit_amount: int, staking_period: int) -> dict:
        """Preview of what opening ``(deposit_amount, staking_period)`` would pay."""
        boost = self.boost_for(staking_period)
        reward = self.reward_for_terms(deposit_amount, staking_period)
        return {
            "deposit_amount": deposit_amount,
            "staking_period": staking_period,
            "boost_multiplier": boost,
            "boost": boost / self.precision,
            "reward": reward,
            "total_payout": deposit_amount + reward,
        }
