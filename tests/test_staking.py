"""
Tests for stakeflow_core.staking — token staking positions.

Covers:
  - open / claim / close lifecycle for the reference scenario
  - Precondition order and the error raised for each
  - Cooldown enforcement and the full-term reward on every claim
  - Rollback when the value collaborator refuses or raises
  - Reentrancy from inside a transfer
  - Totals and summary
"""

import pytest

from stakeflow_core.collaborators import Treasury
from stakeflow_core.errors import (
    ArithmeticOverflow,
    CooldownActive,
    ExceedsMaxDuration,
    NoActiveStake,
    NoRewardsAvailable,
    PeriodIncomplete,
    ReentrantCall,
    StakingInProgress,
    TransferFailed,
    ZeroAmount,
)
from stakeflow_core.precision import TIME_UNIT
from stakeflow_core.staking import StakePositionLedger, StakingPosition, request_transfer

T0 = 1_700_000_000
DAY = TIME_UNIT


# ── open ────────────────────────────────────────────────────────────────

class TestOpen:
    def test_open_records_position(self, ledger, treasury):
        pos = ledger.open("rAlice", 100, 100, T0)
        assert isinstance(pos, StakingPosition)
        assert pos.deposit_amount == 100
        assert pos.staking_period == 100
        assert pos.initiation_timestamp == T0
        assert pos.last_reward_timestamp == T0
        assert pos.unlock_timestamp == T0 + 100 * DAY
        assert ledger.get_stake_amount("rAlice") == 100
        assert ledger.total_staked == 100
        assert treasury.balance_of("rAlice") == 9_900
        assert treasury.custody == 1_000_100

    def test_zero_amount(self, ledger):
        with pytest.raises(ZeroAmount):
            ledger.open("rAlice", 0, 10, T0)

    def test_duration_above_max(self, ledger):
        with pytest.raises(ExceedsMaxDuration):
            ledger.open("rAlice", 100, 366, T0)

    def test_duration_equal_to_max_allowed(self, ledger):
        ledger.open("rAlice", 100, 365, T0)
        assert ledger.has_position("rAlice")

    def test_zero_duration_allowed(self, ledger):
        ledger.open("rAlice", 100, 0, T0)
        assert ledger.get_position("rAlice").is_unlocked(T0)

    def test_second_open_rejected(self, ledger):
        ledger.open("rAlice", 100, 10, T0)
        with pytest.raises(StakingInProgress):
            ledger.open("rAlice", 50, 10, T0 + DAY)
        assert ledger.get_stake_amount("rAlice") == 100

    def test_zero_amount_checked_before_duration(self, ledger):
        with pytest.raises(ZeroAmount):
            ledger.open("rAlice", 0, 10_000, T0)

    def test_duration_checked_before_existing_position(self, ledger):
        ledger.open("rAlice", 100, 10, T0)
        with pytest.raises(ExceedsMaxDuration):
            ledger.open("rAlice", 100, 10_000, T0)

    def test_max_period_change_affects_new_opens(self, ledger, params):
        params.set_max_period("rAdmin", 30)
        with pytest.raises(ExceedsMaxDuration):
            ledger.open("rAlice", 100, 31, T0)

    def test_insufficient_funds_rolls_back(self, ledger, treasury):
        with pytest.raises(TransferFailed):
            ledger.open("rAlice", 20_000, 10, T0)
        assert not ledger.has_position("rAlice")
        assert ledger.total_staked == 0
        assert ledger.total_deposited == 0
        assert treasury.balance_of("rAlice") == 10_000

    def test_unlock_overflow_fails_closed(self, params, treasury):
        ledger = StakePositionLedger(params, treasury)
        params.set_max_period("rAdmin", 2 ** 250)
        with pytest.raises(ArithmeticOverflow):
            ledger.open("rAlice", 100, 2 ** 250, T0)
        assert not ledger.has_position("rAlice")


# ── claim ───────────────────────────────────────────────────────────────

class TestClaim:
    def test_claim_inside_cooldown(self, ledger):
        ledger.open("rAlice", 100, 100, T0)
        with pytest.raises(CooldownActive):
            ledger.claim("rAlice", T0 + 7 * DAY - 1)

    def test_claim_after_cooldown_pays_full_term_reward(self, ledger, treasury):
        ledger.open("rAlice", 100, 100, T0)
        paid = ledger.claim("rAlice", T0 + 7 * DAY)
        assert paid == 13_698
        assert treasury.balance_of("rAlice") == 9_900 + 13_698
        pos = ledger.get_position("rAlice")
        assert pos.last_reward_timestamp == T0 + 7 * DAY
        assert pos.rewards_claimed == 13_698
        assert pos.deposit_amount == 100

    def test_cooldown_restarts_from_last_claim(self, ledger):
        ledger.open("rAlice", 100, 100, T0)
        ledger.claim("rAlice", T0 + 7 * DAY)
        with pytest.raises(CooldownActive):
            ledger.claim("rAlice", T0 + 13 * DAY)
        assert ledger.claim("rAlice", T0 + 14 * DAY) == 13_698
        assert ledger.total_rewards_paid == 2 * 13_698

    def test_no_position(self, ledger):
        with pytest.raises(NoActiveStake):
            ledger.claim("rAlice", T0)

    def test_tiny_position_has_no_rewards(self, ledger):
        ledger.open("rAlice", 1, 1, T0)
        with pytest.raises(NoRewardsAvailable):
            ledger.claim("rAlice", T0 + 7 * DAY)

    def test_zero_duration_has_no_rewards(self, ledger):
        ledger.open("rAlice", 100, 0, T0)
        with pytest.raises(NoRewardsAvailable):
            ledger.claim("rAlice", T0 + 7 * DAY)

    def test_parameter_changes_apply_to_open_positions(self, ledger, params):
        ledger.open("rAlice", 100, 100, T0)
        params.set_max_period("rAdmin", 50)
        assert ledger.compute_reward("rAlice") == 50_000

    def test_shorter_cooldown_applies_immediately(self, ledger, params):
        ledger.open("rAlice", 100, 100, T0)
        params.set_claim_cooldown("rAdmin", 1)
        assert ledger.claim("rAlice", T0 + DAY) == 13_698

    def test_refused_payout_rolls_back(self, params):
        treasury = Treasury(balances={"rAlice": 100}, custody=0)
        ledger = StakePositionLedger(params, treasury)
        ledger.open("rAlice", 100, 100, T0)
        with pytest.raises(TransferFailed):
            ledger.claim("rAlice", T0 + 7 * DAY)
        pos = ledger.get_position("rAlice")
        assert pos.last_reward_timestamp == T0
        assert pos.rewards_claimed == 0
        assert ledger.total_rewards_paid == 0


# ── close ───────────────────────────────────────────────────────────────

class TestClose:
    def test_close_before_unlock(self, ledger):
        ledger.open("rAlice", 100, 100, T0)
        with pytest.raises(PeriodIncomplete):
            ledger.close("rAlice", T0 + 100 * DAY - 1)

    def test_close_pays_principal_plus_reward(self, ledger, treasury):
        ledger.open("rAlice", 100, 100, T0)
        payout = ledger.close("rAlice", T0 + 100 * DAY)
        assert payout == 13_798
        assert not ledger.has_position("rAlice")
        assert ledger.get_stake_amount("rAlice") == 0
        assert ledger.total_staked == 0
        assert ledger.total_principal_returned == 100
        assert treasury.balance_of("rAlice") == 10_000 + 13_698

    def test_close_with_zero_reward_returns_principal(self, ledger, treasury):
        ledger.open("rAlice", 100, 0, T0)
        assert ledger.close("rAlice", T0) == 100
        assert treasury.balance_of("rAlice") == 10_000

    def test_close_without_position(self, ledger):
        with pytest.raises(NoActiveStake):
            ledger.close("rAlice", T0)

    def test_account_may_reopen_after_close(self, ledger):
        ledger.open("rAlice", 100, 0, T0)
        ledger.close("rAlice", T0)
        ledger.open("rAlice", 200, 10, T0 + DAY)
        assert ledger.get_stake_amount("rAlice") == 200

    def test_refused_payout_restores_position(self, params):
        treasury = Treasury(balances={"rAlice": 100}, custody=0)
        ledger = StakePositionLedger(params, treasury)
        ledger.open("rAlice", 100, 100, T0)
        with pytest.raises(TransferFailed):
            ledger.close("rAlice", T0 + 100 * DAY)
        assert ledger.get_stake_amount("rAlice") == 100
        assert ledger.total_staked == 100
        assert ledger.total_principal_returned == 0
        assert treasury.custody == 100


# ── transfer collaborator behaviour ─────────────────────────────────────

class _ExplodingTreasury(Treasury):
    def transfer_out(self, account, amount):
        raise RuntimeError("ledger offline")


class _ReentrantTreasury(Treasury):
    """Calls back into the ledger while a payout is in flight."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.ledger = None
        self.nested_errors = []

    def transfer_out(self, account, amount):
        try:
            self.ledger.close(account, T0 + 1_000 * DAY)
        except ReentrantCall as exc:
            self.nested_errors.append(exc)
        return super().transfer_out(account, amount)


class TestTransferCollaborator:
    def test_request_transfer_refused(self):
        with pytest.raises(TransferFailed):
            request_transfer(Treasury(), "transfer_in", "rAlice", 5)

    def test_request_transfer_chains_exception(self):
        with pytest.raises(TransferFailed) as info:
            request_transfer(_ExplodingTreasury(custody=10), "transfer_out", "rAlice", 5)
        assert isinstance(info.value.__cause__, RuntimeError)

    def test_collaborator_exception_rolls_back(self, params):
        ledger = StakePositionLedger(params, _ExplodingTreasury(balances={"rAlice": 100}))
        ledger.open("rAlice", 100, 0, T0)
        with pytest.raises(TransferFailed):
            ledger.close("rAlice", T0)
        assert ledger.get_stake_amount("rAlice") == 100

    def test_reentrant_call_rejected(self, params):
        treasury = _ReentrantTreasury(balances={"rAlice": 100}, custody=1_000_000)
        ledger = StakePositionLedger(params, treasury)
        treasury.ledger = ledger
        ledger.open("rAlice", 100, 100, T0)

        assert ledger.claim("rAlice", T0 + 7 * DAY) == 13_698
        assert len(treasury.nested_errors) == 1
        # the nested close never ran
        assert ledger.has_position("rAlice")
        assert not ledger.guard.is_in_flight("rAlice")

    def test_guard_released_after_failure(self, ledger):
        with pytest.raises(NoActiveStake):
            ledger.claim("rAlice", T0)
        assert ledger.guard.active_count == 0


# ── queries ─────────────────────────────────────────────────────────────

class TestQueries:
    def test_compute_reward_without_position(self, ledger):
        assert ledger.compute_reward("rNobody") == 0
        assert ledger.get_position("rNobody") is None

    def test_summary(self, ledger):
        ledger.open("rAlice", 100, 100, T0)
        ledger.open("rBob", 300, 10, T0)
        ledger.close("rBob", T0 + 10 * DAY)
        s = ledger.get_summary()
        assert s["active_positions"] == 1
        assert s["total_staked"] == 100
        assert s["total_deposited"] == 400
        assert s["total_principal_returned"] == 300

    def test_position_to_dict(self, ledger):
        ledger.open("rAlice", 100, 100, T0)
        d = ledger.get_position("rAlice").to_dict(now=T0)
        assert d["unlock_timestamp"] == T0 + 100 * DAY
        assert d["unlocked"] is False
