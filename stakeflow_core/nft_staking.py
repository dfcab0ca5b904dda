"""
Pooled NFT staking for StakeFlow.

Holders stake non-fungible assets into a shared pool that pays a fixed
daily budget (``nft_rewards_per_day``) split across every staked NFT.

Lazy Accrual
────────────
Nothing accrues in the background.  At the start of every stake,
unstake or claim by an account, that account's share is settled:

    elapsed_days  = (now − user.last_reward_timestamp) // TIME_UNIT
    pool_reward   = elapsed_days × nft_rewards_per_day
    account_share = pool_reward × user.count // total_nfts_staked   (0 if total is 0)

    user.pending_rewards       += account_share
    user.last_reward_timestamp  = now

The share uses the *current* global count at the acting account's
checkpoint; it is not an integral over every count change in between.
Any partial day since the checkpoint is dropped when the timestamp moves.

Staked-asset bookkeeping
────────────────────────
``staker_of`` maps asset → staker; ``staked_assets`` keeps each account's
asset list, with removal by swap-with-last then pop (order is not
meaningful).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

from stakeflow_core.collaborators import Privilege
from stakeflow_core.errors import (
    InvariantViolation,
    NoRewardsAvailable,
    NotInitialized,
    NotStaker,
    NotTokenOwner,
    StakingError,
    TransferFailed,
)
from stakeflow_core.guard import ReentrancyGuard
from stakeflow_core.nftoken import POOL_CUSTODY
from stakeflow_core.precision import TIME_UNIT, checked, checked_add, checked_mul
from stakeflow_core.staking import request_transfer

logger = logging.getLogger("stakeflow.nft")


@dataclass
class UserInfo:
    """Per-account NFT pool record; never deleted once created."""
    number_of_nfts_staked: int = 0
    last_reward_timestamp: int = 0
    pending_rewards: int = 0
    rewards_claimed: int = 0

    def to_dict(self) -> dict:
        return {
            "number_of_nfts_staked": self.number_of_nfts_staked,
            "last_reward_timestamp": self.last_reward_timestamp,
            "pending_rewards": self.pending_rewards,
            "rewards_claimed": self.rewards_claimed,
        }


def accrued_share(
    user: UserInfo,
    now: int,
    rewards_per_day: int,
    total_nfts_staked: int,
) -> int:
    """The account's unsettled share of the pool budget since its checkpoint."""
    if total_nfts_staked <= 0 or user.number_of_nfts_staked <= 0:
        return 0
    if now <= user.last_reward_timestamp:
        return 0
    elapsed_days = (now - user.last_reward_timestamp) // TIME_UNIT
    pool_reward = checked_mul(elapsed_days, rewards_per_day)
    return checked_mul(pool_reward, user.number_of_nfts_staked) // total_nfts_staked


class NFTStakingPool:
    """
    Owns per-account NFT counts, ownership markers and pending rewards.

    Collaborators:
      ``params``   — live :class:`~stakeflow_core.parameters.ParameterStore`
                     (supplies ``nft_rewards_per_day`` and the auth check)
      ``custody``  — asset custody (``owner_of`` / ``transfer_asset_in`` /
                     ``transfer_asset_out``)
      ``transfer`` — value collaborator used to pay claimed rewards
      ``guard``    — shared :class:`~stakeflow_core.guard.ReentrancyGuard`
    """

    def __init__(
        self,
        params: Any,
        custody: Any,
        transfer: Any,
        guard: Optional[ReentrancyGuard] = None,
    ) -> None:
        self.params = params
        self.custody = custody
        self.transfer = transfer
        self.guard = guard if guard is not None else ReentrancyGuard()
        self.initialized: bool = False
        self.users: dict[str, UserInfo] = {}
        self.staker_of: dict[str, str] = {}
        self.staked_assets: dict[str, list[str]] = {}
        self.asset_index: dict[str, int] = {}
        self.total_nfts_staked: int = 0
        self.total_rewards_paid: int = 0
        # called after bookkeeping, before any custody or value transfer
        self.precommit: Optional[Callable[[], None]] = None

    # ── administration ──────────────────────────────────────────────

    def initialize(self, caller: str, rewards_per_day: int) -> None:
        """Open the pool and set its daily budget (privileged)."""
        self.params.require(caller, Privilege.INITIALIZE_POOL)
        self.params.nft_rewards_per_day = checked(rewards_per_day, "rewards_per_day")
        self.initialized = True
        logger.info(f"NFT pool initialized by {caller}: {rewards_per_day} per day")

    # ── helpers ─────────────────────────────────────────────────────

    def _precommit(self) -> None:
        if self.precommit is not None:
            self.precommit()

    def _require_initialized(self) -> None:
        if not self.initialized:
            raise NotInitialized("NFT staking pool is not initialized")

    def _settle(self, user: UserInfo, now: int) -> None:
        share = accrued_share(
            user, now, self.params.nft_rewards_per_day, self.total_nfts_staked,
        )
        user.pending_rewards = checked_add(user.pending_rewards, share)
        user.last_reward_timestamp = max(user.last_reward_timestamp, now)

    def _checkpoint(self, account: str) -> tuple:
        user = self.users.get(account)
        return (
            replace(user) if user is not None else None,
            list(self.staked_assets.get(account, [])),
            self.total_nfts_staked,
            self.total_rewards_paid,
        )

    def _rollback(self, account: str, checkpoint: tuple, asset_id: str, staker: Optional[str]) -> None:
        user, assets, total, paid = checkpoint
        if user is None:
            self.users.pop(account, None)
        else:
            self.users[account] = user
        if assets:
            self.staked_assets[account] = assets
        else:
            self.staked_assets.pop(account, None)
        for i, aid in enumerate(assets):
            self.asset_index[aid] = i
        if staker is None:
            self.staker_of.pop(asset_id, None)
            self.asset_index.pop(asset_id, None)
        else:
            self.staker_of[asset_id] = staker
        self.total_nfts_staked = total
        self.total_rewards_paid = paid

    def _remove_asset(self, account: str, asset_id: str) -> None:
        """Swap-with-last removal from the account's asset list."""
        assets = self.staked_assets[account]
        index = self.asset_index.pop(asset_id)
        last = assets.pop()
        if last != asset_id:
            assets[index] = last
            self.asset_index[last] = index
        if not assets:
            del self.staked_assets[account]

    # ── core operations ─────────────────────────────────────────────

    def stake(self, account: str, asset_id: str, now: int) -> UserInfo:
        """Move *asset_id* into pool custody on behalf of *account*."""
        with self.guard.enter(account):
            self._require_initialized()
            if asset_id in self.staker_of:
                raise NotTokenOwner(f"{asset_id} is already staked")
            if account == getattr(self.custody, "custody_account", POOL_CUSTODY):
                raise NotTokenOwner(f"{account} is the pool custody account")
            if self.custody.owner_of(asset_id) != account:
                raise NotTokenOwner(f"{account} does not own {asset_id}")

            checkpoint = self._checkpoint(account)
            try:
                user = self.users.setdefault(account, UserInfo(last_reward_timestamp=now))
                self._settle(user, now)
                user.number_of_nfts_staked += 1
                self.total_nfts_staked += 1
                self.staker_of[asset_id] = account
                assets = self.staked_assets.setdefault(account, [])
                self.asset_index[asset_id] = len(assets)
                assets.append(asset_id)
                self._precommit()
                self._request_custody("transfer_asset_in", asset_id, account)
            except StakingError as exc:
                self._rollback(account, checkpoint, asset_id, None)
                logger.warning(f"NFT stake of {asset_id} rolled back for {account}: {exc}")
                raise

            logger.info(
                f"{account} staked {asset_id} "
                f"({user.number_of_nfts_staked} held, {self.total_nfts_staked} in pool)"
            )
            return user

    def unstake(self, account: str, asset_id: str, now: int) -> UserInfo:
        """Return *asset_id* from pool custody to *account*."""
        with self.guard.enter(account):
            if self.staker_of.get(asset_id) != account:
                raise NotStaker(f"{asset_id} is not staked by {account}")

            checkpoint = self._checkpoint(account)
            try:
                user = self.users[account]
                self._settle(user, now)
                user.number_of_nfts_staked -= 1
                self.total_nfts_staked -= 1
                del self.staker_of[asset_id]
                self._remove_asset(account, asset_id)
                self._precommit()
                self._request_custody("transfer_asset_out", asset_id, account)
            except StakingError as exc:
                self._rollback(account, checkpoint, asset_id, account)
                logger.warning(f"NFT unstake of {asset_id} rolled back for {account}: {exc}")
                raise

            logger.info(
                f"{account} unstaked {asset_id} "
                f"({user.number_of_nfts_staked} held, {self.total_nfts_staked} in pool)"
            )
            return user

    def claim_rewards(self, account: str, now: int) -> int:
        """Settle and pay out the account's whole pending balance."""
        with self.guard.enter(account):
            self._require_initialized()
            user = self.users.get(account)
            if user is None:
                raise NoRewardsAvailable(f"No NFT rewards available for {account}")
            amount = checked_add(
                user.pending_rewards,
                accrued_share(user, now, self.params.nft_rewards_per_day,
                              self.total_nfts_staked),
            )
            if amount <= 0:
                raise NoRewardsAvailable(f"No NFT rewards available for {account}")
            paid = checked_add(self.total_rewards_paid, amount)
            claimed = checked_add(user.rewards_claimed, amount)

            checkpoint = self._checkpoint(account)
            self._settle(user, now)
            user.pending_rewards = 0
            user.rewards_claimed = claimed
            self.total_rewards_paid = paid
            try:
                self._precommit()
                request_transfer(self.transfer, "transfer_out", account, amount)
            except (TransferFailed, InvariantViolation) as exc:
                self.users[account] = checkpoint[0]
                self.total_rewards_paid = checkpoint[3]
                logger.warning(f"NFT reward claim rolled back for {account}: {exc}")
                raise

            logger.info(f"{account} claimed {amount} NFT pool rewards")
            return amount

    def _request_custody(self, method: str, asset_id: str, account: str) -> None:
        try:
            ok = getattr(self.custody, method)(asset_id, account)
        except Exception as exc:
            raise TransferFailed(f"{method} of {asset_id} raised: {exc}") from exc
        if not ok:
            raise TransferFailed(f"{method} of {asset_id} was refused")

    # ── queries ─────────────────────────────────────────────────────

    def get_user_info(self, account: str) -> Optional[UserInfo]:
        return self.users.get(account)

    def get_staked_assets(self, account: str) -> list[str]:
        return list(self.staked_assets.get(account, []))

    def get_staker(self, asset_id: str) -> Optional[str]:
        return self.staker_of.get(asset_id)

    def pending_rewards(self, account: str, now: int) -> int:
        """Settled pending balance plus the share that would settle at *now*."""
        user = self.users.get(account)
        if user is None:
            return 0
        return user.pending_rewards + accrued_share(
            user, now, self.params.nft_rewards_per_day, self.total_nfts_staked,
        )

    def account_info(self, account: str, now: Optional[int] = None) -> dict:
        user = self.users.get(account) or UserInfo()
        info = user.to_dict()
        info["account"] = account
        info["staked_assets"] = self.get_staked_assets(account)
        if now is not None:
            info["claimable"] = self.pending_rewards(account, now)
        return info

    def get_summary(self) -> dict:
        return {
            "initialized": self.initialized,
            "nft_rewards_per_day": self.params.nft_rewards_per_day,
            "total_nfts_staked": self.total_nfts_staked,
            "stakers": sum(1 for u in self.users.values() if u.number_of_nfts_staked > 0),
            "total_pending_rewards": sum(u.pending_rewards for u in self.users.values()),
            "total_rewards_paid": self.total_rewards_paid,
        }
