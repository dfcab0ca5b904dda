"""
StakeFlow engine facade.

Wires the parameter store, reward engine, token position ledger and NFT
pool around one shared reentrancy guard and one set of collaborators,
and exposes the operations and read-only queries callers use:

    open_stake / claim_rewards / close_stake
    stake_nft / unstake_nft / claim_nft_rewards
    initialize_nft_pool / update_parameters / emergency_drain

    get_stake_amount / get_position / compute_reward / compute_boost
    get_parameters / total_nfts_staked / summary

Time is always supplied by the caller (``now``); the engine has no clock.
When ``check_invariants`` is on, every state-changing operation is
bracketed by an :class:`~stakeflow_core.invariants.InvariantChecker`.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, TypeVar

from stakeflow_core.collaborators import Privilege, RoleRegistry, Treasury
from stakeflow_core.errors import InvariantViolation, StakingError
from stakeflow_core.guard import ReentrancyGuard
from stakeflow_core.invariants import InvariantChecker
from stakeflow_core.nft_staking import NFTStakingPool
from stakeflow_core.nftoken import NFTRegistry
from stakeflow_core.parameters import ParameterSet, ParameterStore
from stakeflow_core.rewards import RewardEngine
from stakeflow_core.staking import StakePositionLedger, StakingPosition, request_transfer

logger = logging.getLogger("stakeflow.engine")

T = TypeVar("T")


class StakingEngine:

    def __init__(
        self,
        params: ParameterStore,
        transfer: Any,
        custody: Any,
        *,
        check_invariants: bool = False,
    ) -> None:
        self.params = params
        self.transfer = transfer
        self.custody = custody
        self.guard = ReentrancyGuard()
        self.rewards = RewardEngine(params)
        self.ledger = StakePositionLedger(params, transfer, self.rewards, self.guard)
        self.nft_pool = NFTStakingPool(params, custody, transfer, self.guard)
        self.checker: Optional[InvariantChecker] = (
            InvariantChecker() if check_invariants else None
        )

    @classmethod
    def from_config(
        cls,
        cfg: Any,
        *,
        gate: Any = None,
        transfer: Any = None,
        custody: Any = None,
    ) -> StakingEngine:
        """
        Build an engine from a :class:`~stakeflow_core.config.StakeFlowConfig`.

        Collaborators default to the in-memory ``RoleRegistry`` (seeded with
        ``engine.admins``), ``Treasury`` (seeded with ``engine.reward_reserve``)
        and ``NFTRegistry``.
        """
        if gate is None:
            gate = RoleRegistry(admins=set(cfg.engine.admins))
        if transfer is None:
            transfer = Treasury(custody=cfg.engine.reward_reserve)
        if custody is None:
            custody = NFTRegistry()
        econ = cfg.economics
        params = ParameterStore(
            econ.max_staking_period,
            econ.boost_coefficient,
            econ.claim_cooldown_days,
            econ.annual_yield_percentage,
            gate=gate,
        )
        engine = cls(params, transfer, custody,
                     check_invariants=cfg.engine.check_invariants)
        if cfg.nft_pool.auto_initialize and cfg.engine.admins:
            engine.initialize_nft_pool(cfg.engine.admins[0], cfg.nft_pool.rewards_per_day)
        return engine

    # ── plumbing ────────────────────────────────────────────────────

    def _check(self, op: str, account: str) -> None:
        ok, msg = self.checker.verify(self.ledger, self.nft_pool)
        if not ok:
            logger.error(f"Invariant violated during {op}: {msg}",
                         extra={"account": account, "op": op})
            raise InvariantViolation(msg)

    def _run(self, op: str, account: str, fn: Callable[[], T]) -> T:
        """
        Run one state-changing operation.

        With invariant checking on, the ledger and pool verify their new
        bookkeeping before any transfer is requested, so a violation rolls
        the operation back like a refused transfer would.
        """
        if self.checker is not None:
            self.checker.capture(self.ledger, self.nft_pool)
            hook = lambda: self._check(op, account)  # noqa: E731
            self.ledger.precommit = self.nft_pool.precommit = hook
        try:
            result = fn()
        except StakingError as exc:
            logger.debug(
                f"{op} rejected: {type(exc).__name__}: {exc}",
                extra={"account": account, "op": op},
            )
            raise
        finally:
            self.ledger.precommit = self.nft_pool.precommit = None
        if self.checker is not None:
            self._check(op, account)
        return result

    # ── token staking ───────────────────────────────────────────────

    def open_stake(self, account: str, amount: int, duration: int, now: int) -> StakingPosition:
        return self._run("open", account,
                         lambda: self.ledger.open(account, amount, duration, now))

    def claim_rewards(self, account: str, now: int) -> int:
        return self._run("claim", account, lambda: self.ledger.claim(account, now))

    def close_stake(self, account: str, now: int) -> int:
        return self._run("close", account, lambda: self.ledger.close(account, now))

    # ── NFT staking ─────────────────────────────────────────────────

    def initialize_nft_pool(self, caller: str, rewards_per_day: int) -> None:
        self._run("nft_initialize", caller,
                  lambda: self.nft_pool.initialize(caller, rewards_per_day))

    def stake_nft(self, account: str, asset_id: str, now: int) -> None:
        self._run("nft_stake", account,
                  lambda: self.nft_pool.stake(account, asset_id, now))

    def unstake_nft(self, account: str, asset_id: str, now: int) -> None:
        self._run("nft_unstake", account,
                  lambda: self.nft_pool.unstake(account, asset_id, now))

    def claim_nft_rewards(self, account: str, now: int) -> int:
        return self._run("nft_claim", account,
                         lambda: self.nft_pool.claim_rewards(account, now))

    # ── administration ──────────────────────────────────────────────

    def update_parameters(self, caller: str, **changes: int) -> ParameterSet:
        self._run("set_parameters", caller,
                  lambda: self.params.update(caller, **changes))
        return self.params.snapshot()

    def emergency_drain(self, caller: str, recipient: str, amount: int) -> int:
        """Move *amount* out of engine custody to *recipient* (privileged).

        Positions are left untouched; the operator is responsible for
        making stakers whole.
        """
        def drain() -> int:
            self.params.require(caller, Privilege.EMERGENCY_DRAIN)
            with self.guard.enter(recipient):
                if self.ledger.precommit is not None:
                    self.ledger.precommit()
                request_transfer(self.transfer, "transfer_out", recipient, amount)
            logger.warning(f"Emergency drain of {amount} to {recipient} by {caller}")
            return amount

        return self._run("emergency_drain", caller, drain)

    # ── queries ─────────────────────────────────────────────────────

    def get_stake_amount(self, account: str) -> int:
        return self.ledger.get_stake_amount(account)

    def get_position(self, account: str) -> Optional[StakingPosition]:
        return self.ledger.get_position(account)

    def compute_reward(self, account: str) -> int:
        return self.ledger.compute_reward(account)

    def compute_boost(self, duration: int) -> int:
        return self.rewards.boost_for(duration)

    def get_parameters(self) -> ParameterSet:
        return self.params.snapshot()

    @property
    def total_nfts_staked(self) -> int:
        return self.nft_pool.total_nfts_staked

    def summary(self) -> dict:
        return {
            "parameters": self.params.to_dict(),
            "staking": self.ledger.get_summary(),
            "nft_pool": self.nft_pool.get_summary(),
        }
