"""
Economic parameters for StakeFlow.

Four tunable values drive token staking:

    max_staking_period        longest lock a new position may choose (days)
    reward_boost_coefficient  cap of the dynamic boost, before precision
    reward_claim_cooldown     minimum gap between claims (seconds)
    annual_yield_percentage   yield rate, in whole percent

and one drives the NFT pool:

    nft_rewards_per_day       daily reward budget shared by all staked NFTs

Only the initial four are validated for strict positivity.  Later updates
overwrite unconditionally, zero included; they are only kept inside the
unsigned integer width.  Every update is a privileged
operation checked against the authorization gate, and every update is
announced to the subscribed listeners.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable

from stakeflow_core.collaborators import AllowAll, Privilege
from stakeflow_core.errors import InvalidParameters, Unauthorized
from stakeflow_core.precision import TIME_UNIT, checked, days_to_seconds

logger = logging.getLogger("stakeflow.params")

# update() key -> stored attribute
UPDATABLE_PARAMETERS: dict[str, str] = {
    "max_staking_period": "max_staking_period",
    "reward_boost_coefficient": "reward_boost_coefficient",
    "claim_cooldown_days": "reward_claim_cooldown",
    "annual_yield_percentage": "annual_yield_percentage",
    "nft_rewards_per_day": "nft_rewards_per_day",
}


@dataclass(frozen=True)
class ParameterSet:
    """Immutable snapshot of every economic parameter."""
    max_staking_period: int
    reward_boost_coefficient: int
    reward_claim_cooldown: int
    annual_yield_percentage: int
    nft_rewards_per_day: int = 0

    @property
    def claim_cooldown_days(self) -> int:
        return self.reward_claim_cooldown // TIME_UNIT

    def to_dict(self) -> dict:
        d = asdict(self)
        d["claim_cooldown_days"] = self.claim_cooldown_days
        return d


@dataclass(frozen=True)
class ParameterChanged:
    """Configuration-changed observation handed to listeners."""
    name: str
    value: int
    caller: str


class ParameterStore:
    """Holds the live parameter values and guards their updates."""

    def __init__(
        self,
        max_staking_period: int,
        reward_boost_coefficient: int,
        claim_cooldown_days: int,
        annual_yield_percentage: int,
        nft_rewards_per_day: int = 0,
        gate: Any = None,
    ) -> None:
        initial = {
            "max_staking_period": max_staking_period,
            "reward_boost_coefficient": reward_boost_coefficient,
            "claim_cooldown_days": claim_cooldown_days,
            "annual_yield_percentage": annual_yield_percentage,
        }
        for name, value in initial.items():
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise InvalidParameters(f"{name} must be a positive integer, got {value!r}")

        self._gate = gate if gate is not None else AllowAll()
        self._listeners: list[Callable[[ParameterChanged], None]] = []
        self.max_staking_period = checked(max_staking_period)
        self.reward_boost_coefficient = checked(reward_boost_coefficient)
        self.reward_claim_cooldown = days_to_seconds(claim_cooldown_days)
        self.annual_yield_percentage = checked(annual_yield_percentage)
        self.nft_rewards_per_day = checked(nft_rewards_per_day)

    # ── observation ─────────────────────────────────────────────────

    def subscribe(self, listener: Callable[[ParameterChanged], None]) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[ParameterChanged], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ── authorization ───────────────────────────────────────────────

    def require(self, caller: str, privilege: Privilege) -> None:
        """Raise :class:`Unauthorized` unless the gate admits *caller*."""
        if not self._gate.is_authorized(caller, privilege):
            logger.debug(f"Refused {privilege.value} for {caller}")
            raise Unauthorized(f"{caller} may not {privilege.value}")

    # ── setters ─────────────────────────────────────────────────────

    def _apply(self, caller: str, name: str, stored: int) -> ParameterChanged:
        setattr(self, name, checked(stored, name))
        logger.info(f"Parameter {name} set to {stored} by {caller}")
        return ParameterChanged(name=name, value=stored, caller=caller)

    def _notify(self, events: list[ParameterChanged]) -> None:
        for event in events:
            for listener in list(self._listeners):
                listener(event)

    def _update(self, caller: str, name: str, stored: int) -> None:
        self.require(caller, Privilege.SET_PARAMETERS)
        self._notify([self._apply(caller, name, stored)])

    def set_max_period(self, caller: str, days: int) -> None:
        self._update(caller, "max_staking_period", days)

    def set_boost_coefficient(self, caller: str, coefficient: int) -> None:
        self._update(caller, "reward_boost_coefficient", coefficient)

    def set_claim_cooldown(self, caller: str, days: int) -> None:
        self._update(caller, "reward_claim_cooldown", days_to_seconds(days))

    def set_yield_rate(self, caller: str, percentage: int) -> None:
        self._update(caller, "annual_yield_percentage", percentage)

    def set_nft_rewards_per_day(self, caller: str, amount: int) -> None:
        self._update(caller, "nft_rewards_per_day", amount)

    def update(self, caller: str, **changes: int) -> None:
        """Apply several parameters at once; keys use the setter's vocabulary.

        Every value is range-checked and stored before any listener hears
        about the batch.
        """
        unknown = set(changes) - set(UPDATABLE_PARAMETERS)
        if unknown:
            raise KeyError(f"Unknown parameter(s): {', '.join(sorted(unknown))}")
        self.require(caller, Privilege.SET_PARAMETERS)
        stored = {}
        for name, value in changes.items():
            if name == "claim_cooldown_days":
                stored[name] = days_to_seconds(value)
            else:
                stored[name] = checked(value, name)
        events = [
            self._apply(caller, UPDATABLE_PARAMETERS[name], value)
            for name, value in stored.items()
        ]
        self._notify(events)

    # ── queries ─────────────────────────────────────────────────────

    def snapshot(self) -> ParameterSet:
        return ParameterSet(
            max_staking_period=self.max_staking_period,
            reward_boost_coefficient=self.reward_boost_coefficient,
            reward_claim_cooldown=self.reward_claim_cooldown,
            annual_yield_percentage=self.annual_yield_percentage,
            nft_rewards_per_day=self.nft_rewards_per_day,
        )

    def to_dict(self) -> dict:
        return self.snapshot().to_dict()
