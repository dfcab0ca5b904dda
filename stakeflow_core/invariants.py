"""
Post-operation invariant checks for the StakeFlow engine.

Captured before a state-changing operation and verified after it:

  - Staked principal equals the sum of active deposits
  - Principal is conserved: staked = deposited − returned
  - Active deposits are positive and checkpoints never precede opening
  - Cumulative counters never decrease
  - NFT counts, asset lists and ownership markers agree with each other
  - NFT checkpoints never move backward and pending rewards are non-negative

Any failure is reported as ``(False, message)``; the engine turns it
into :class:`~stakeflow_core.errors.InvariantViolation`.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class EngineSnapshot:
    """Snapshot of key engine fields before an operation."""
    total_deposited: int = 0
    total_principal_returned: int = 0
    total_rewards_paid: int = 0
    nft_rewards_paid: int = 0
    nft_checkpoints: dict[str, int] = field(default_factory=dict)
    position_checkpoints: dict[str, int] = field(default_factory=dict)


class InvariantChecker:
    """
    Captures a pre-operation snapshot of a ledger / pool pair and validates
    invariants after the operation has been applied.
    """

    def __init__(self):
        self._snapshot: EngineSnapshot | None = None

    def capture(self, ledger, pool) -> None:
        snap = EngineSnapshot(
            total_deposited=ledger.total_deposited,
            total_principal_returned=ledger.total_principal_returned,
            total_rewards_paid=ledger.total_rewards_paid,
            nft_rewards_paid=pool.total_rewards_paid,
        )
        for account, user in pool.users.items():
            snap.nft_checkpoints[account] = user.last_reward_timestamp
        for account, pos in ledger.positions.items():
            snap.position_checkpoints[account] = pos.last_reward_timestamp
        self._snapshot = snap

    def verify(self, ledger, pool) -> tuple[bool, str]:
        """
        Verify all invariants against the current state.
        Returns (passed, error_message).
        """
        checks = [
            self._check_staked_total(ledger),
            self._check_principal_conservation(ledger),
            self._check_positions(ledger),
            self._check_nft_counts(pool),
            self._check_nft_ownership(pool),
            self._check_nft_pending(pool),
        ]
        if self._snapshot is not None:
            checks.append(self._check_monotonic_counters(ledger, pool))
            checks.append(self._check_checkpoints(ledger, pool))

        self._snapshot = None
        errors = [msg for ok, msg in checks if not ok]
        if errors:
            return False, "; ".join(errors)
        return True, ""

    def _check_staked_total(self, ledger) -> tuple[bool, str]:
        active = sum(p.deposit_amount for p in ledger.positions.values())
        if ledger.total_staked != active:
            return False, f"total_staked {ledger.total_staked} != active deposits {active}"
        return True, ""

    def _check_principal_conservation(self, ledger) -> tuple[bool, str]:
        expected = ledger.total_deposited - ledger.total_principal_returned
        if ledger.total_staked != expected:
            return (False,
                    f"Principal not conserved: staked {ledger.total_staked} != "
                    f"{ledger.total_deposited} - {ledger.total_principal_returned}")
        return True, ""

    def _check_positions(self, ledger) -> tuple[bool, str]:
        for account, pos in ledger.positions.items():
            if pos.account != account:
                return False, f"Position keyed by {account} belongs to {pos.account}"
            if pos.deposit_amount <= 0:
                return False, f"Non-positive deposit on {account}: {pos.deposit_amount}"
            if pos.staking_period < 0:
                return False, f"Negative staking period on {account}"
            if pos.last_reward_timestamp < pos.initiation_timestamp:
                return False, f"Reward checkpoint precedes opening on {account}"
        return True, ""

    def _check_nft_counts(self, pool) -> tuple[bool, str]:
        total = 0
        for account, user in pool.users.items():
            if user.number_of_nfts_staked < 0:
                return False, f"Negative NFT count on {account}"
            listed = len(pool.staked_assets.get(account, []))
            if listed != user.number_of_nfts_staked:
                return (False,
                        f"NFT count mismatch on {account}: "
                        f"{user.number_of_nfts_staked} counted, {listed} listed")
            total += user.number_of_nfts_staked
        if total != pool.total_nfts_staked:
            return False, f"total_nfts_staked {pool.total_nfts_staked} != sum of counts {total}"
        return True, ""

    def _check_nft_ownership(self, pool) -> tuple[bool, str]:
        listed = 0
        for account, assets in pool.staked_assets.items():
            for index, asset_id in enumerate(assets):
                if pool.staker_of.get(asset_id) != account:
                    return False, f"Asset {asset_id} listed under {account} but marked otherwise"
                if pool.asset_index.get(asset_id) != index:
                    return False, f"Asset {asset_id} index out of sync"
                listed += 1
        if listed != len(pool.staker_of):
            return False, f"{len(pool.staker_of)} ownership markers for {listed} listed assets"
        return True, ""

    def _check_nft_pending(self, pool) -> tuple[bool, str]:
        for account, user in pool.users.items():
            if user.pending_rewards < 0:
                return False, f"Negative NFT pending rewards on {account}"
        return True, ""

    def _check_monotonic_counters(self, ledger, pool) -> tuple[bool, str]:
        snap = self._snapshot
        pairs = [
            ("total_deposited", snap.total_deposited, ledger.total_deposited),
            ("total_principal_returned", snap.total_principal_returned,
             ledger.total_principal_returned),
            ("total_rewards_paid", snap.total_rewards_paid, ledger.total_rewards_paid),
            ("nft total_rewards_paid", snap.nft_rewards_paid, pool.total_rewards_paid),
        ]
        for name, before, after in pairs:
            if after < before:
                return False, f"{name} decreased: {before} -> {after}"
        return True, ""

    def _check_checkpoints(self, ledger, pool) -> tuple[bool, str]:
        """Reward checkpoints only move forward, so no elapsed time is counted twice."""
        snap = self._snapshot
        for account, before in snap.nft_checkpoints.items():
            user = pool.users.get(account)
            if user is None:
                return False, f"NFT user record for {account} disappeared"
            if user.last_reward_timestamp < before:
                return False, f"NFT checkpoint moved backward on {account}"
        for account, before in snap.position_checkpoints.items():
            pos = ledger.positions.get(account)
            if pos is not None and pos.last_reward_timestamp < before:
                return False, f"Claim checkpoint moved backward on {account}"
        return True, ""
