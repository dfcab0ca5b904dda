"""
Shared pytest fixtures for the StakeFlow test suite.
"""

import pytest

from stakeflow_core.collaborators import RoleRegistry, Treasury
from stakeflow_core.engine import StakingEngine
from stakeflow_core.nft_staking import NFTStakingPool
from stakeflow_core.nftoken import NFTRegistry
from stakeflow_core.parameters import ParameterStore
from stakeflow_core.precision import TIME_UNIT
from stakeflow_core.staking import StakePositionLedger

T0 = 1_700_000_000
DAY = TIME_UNIT


@pytest.fixture
def gate():
    """Role registry with a single admin."""
    return RoleRegistry(admins={"rAdmin"})


@pytest.fixture
def params(gate):
    """365-day max, boost 5, 7-day cooldown, 100% yield."""
    return ParameterStore(365, 5, 7, 100, gate=gate)


@pytest.fixture
def treasury():
    """Funded accounts plus a large reward reserve in custody."""
    return Treasury(
        balances={"rAlice": 10_000, "rBob": 10_000, "rCarol": 10_000},
        custody=1_000_000,
    )


@pytest.fixture
def registry():
    return NFTRegistry()


@pytest.fixture
def ledger(params, treasury):
    return StakePositionLedger(params, treasury)


@pytest.fixture
def pool(params, registry, treasury):
    """NFT pool initialized at 10 reward units per day."""
    p = NFTStakingPool(params, registry, treasury)
    p.initialize("rAdmin", 10)
    return p


@pytest.fixture
def engine(params, treasury, registry):
    """Engine with invariant checking on and the NFT pool initialized."""
    e = StakingEngine(params, treasury, registry, check_invariants=True)
    e.initialize_nft_pool("rAdmin", 10)
    return e
