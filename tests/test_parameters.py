"""
Tests for stakeflow_core.parameters — the economic parameter store.

Covers:
  - Strict positivity on construction only
  - Cooldown stored in seconds
  - Setters: authorization, unconditional overwrite, change notifications
  - Batch update with pre-validation
  - Snapshots
"""

from __future__ import annotations

import unittest

from stakeflow_core.collaborators import Privilege, RoleRegistry
from stakeflow_core.errors import ArithmeticOverflow, InvalidParameters, Unauthorized
from stakeflow_core.parameters import ParameterChanged, ParameterSet, ParameterStore
from stakeflow_core.precision import TIME_UNIT


class TestConstruction(unittest.TestCase):

    def test_valid_parameters(self):
        p = ParameterStore(365, 5, 7, 100)
        self.assertEqual(p.max_staking_period, 365)
        self.assertEqual(p.reward_boost_coefficient, 5)
        self.assertEqual(p.reward_claim_cooldown, 7 * TIME_UNIT)
        self.assertEqual(p.annual_yield_percentage, 100)
        self.assertEqual(p.nft_rewards_per_day, 0)

    def test_each_zero_parameter_rejected(self):
        for args in [(0, 5, 7, 100), (365, 0, 7, 100), (365, 5, 0, 100), (365, 5, 7, 0)]:
            with self.subTest(args=args):
                with self.assertRaises(InvalidParameters):
                    ParameterStore(*args)

    def test_negative_rejected(self):
        with self.assertRaises(InvalidParameters):
            ParameterStore(-1, 5, 7, 100)

    def test_non_integer_rejected(self):
        with self.assertRaises(InvalidParameters):
            ParameterStore(365, 5.5, 7, 100)

    def test_boolean_rejected(self):
        with self.assertRaises(InvalidParameters):
            ParameterStore(True, 5, 7, 100)


class TestSetters(unittest.TestCase):

    def setUp(self):
        self.gate = RoleRegistry(admins={"rAdmin"})
        self.params = ParameterStore(365, 5, 7, 100, gate=self.gate)
        self.events: list[ParameterChanged] = []
        self.params.subscribe(self.events.append)

    def test_unauthorized_setter_changes_nothing(self):
        with self.assertRaises(Unauthorized):
            self.params.set_max_period("rMallory", 10)
        self.assertEqual(self.params.max_staking_period, 365)
        self.assertEqual(self.events, [])

    def test_granted_caller_may_set(self):
        self.gate.grant("rOps", Privilege.SET_PARAMETERS)
        self.params.set_yield_rate("rOps", 12)
        self.assertEqual(self.params.annual_yield_percentage, 12)

    def test_revoked_caller_refused(self):
        self.gate.grant("rOps", Privilege.SET_PARAMETERS)
        self.gate.revoke("rOps", Privilege.SET_PARAMETERS)
        with self.assertRaises(Unauthorized):
            self.params.set_yield_rate("rOps", 12)

    def test_setter_allows_zero(self):
        self.params.set_boost_coefficient("rAdmin", 0)
        self.assertEqual(self.params.reward_boost_coefficient, 0)

    def test_cooldown_setter_multiplies_by_time_unit(self):
        self.params.set_claim_cooldown("rAdmin", 3)
        self.assertEqual(self.params.reward_claim_cooldown, 3 * TIME_UNIT)
        self.assertEqual(self.events[-1].value, 3 * TIME_UNIT)

    def test_change_event_carries_name_and_value(self):
        self.params.set_max_period("rAdmin", 180)
        self.assertEqual(
            self.events,
            [ParameterChanged(name="max_staking_period", value=180, caller="rAdmin")],
        )

    def test_unsubscribe(self):
        self.params.unsubscribe(self.events.append)
        self.params.set_max_period("rAdmin", 180)
        self.assertEqual(self.events, [])

    def test_nft_rate_setter(self):
        self.params.set_nft_rewards_per_day("rAdmin", 42)
        self.assertEqual(self.params.nft_rewards_per_day, 42)
        self.assertEqual(self.events[-1].name, "nft_rewards_per_day")

    def test_negative_value_fails_closed(self):
        with self.assertRaises(ArithmeticOverflow):
            self.params.set_max_period("rAdmin", -1)
        self.assertEqual(self.params.max_staking_period, 365)


class TestBatchUpdate(unittest.TestCase):

    def setUp(self):
        self.params = ParameterStore(365, 5, 7, 100, gate=RoleRegistry(admins={"rAdmin"}))

    def test_update_several(self):
        self.params.update("rAdmin", max_staking_period=30, claim_cooldown_days=1)
        self.assertEqual(self.params.max_staking_period, 30)
        self.assertEqual(self.params.reward_claim_cooldown, TIME_UNIT)

    def test_unknown_key(self):
        with self.assertRaises(KeyError):
            self.params.update("rAdmin", bogus=1)

    def test_bad_value_leaves_nothing_applied(self):
        with self.assertRaises(ArithmeticOverflow):
            self.params.update("rAdmin", max_staking_period=30, annual_yield_percentage=-5)
        self.assertEqual(self.params.max_staking_period, 365)
        self.assertEqual(self.params.annual_yield_percentage, 100)

    def test_unauthorized_update(self):
        with self.assertRaises(Unauthorized):
            self.params.update("rNobody", max_staking_period=30)

    def test_listener_sees_whole_batch_applied(self):
        seen = []

        def listener(event):
            seen.append((self.params.max_staking_period,
                         self.params.annual_yield_percentage))
            raise RuntimeError("listener failed")

        self.params.subscribe(listener)
        with self.assertRaises(RuntimeError):
            self.params.update("rAdmin", max_staking_period=30, annual_yield_percentage=12)
        self.assertEqual(seen, [(30, 12)])
        self.assertEqual(self.params.max_staking_period, 30)
        self.assertEqual(self.params.annual_yield_percentage, 12)


class TestSnapshot(unittest.TestCase):

    def test_snapshot_is_frozen_copy(self):
        params = ParameterStore(365, 5, 7, 100)
        snap = params.snapshot()
        params.set_max_period("anyone", 10)
        self.assertIsInstance(snap, ParameterSet)
        self.assertEqual(snap.max_staking_period, 365)

    def test_to_dict(self):
        d = ParameterStore(365, 5, 7, 100).to_dict()
        self.assertEqual(d["claim_cooldown_days"], 7)
        self.assertEqual(d["reward_claim_cooldown"], 7 * TIME_UNIT)
