"""
Error taxonomy for the StakeFlow engine.

Every failure is a subclass of :class:`StakingError`, which itself is a
``ValueError`` so callers that already guard engine calls with
``except ValueError`` keep working.  All preconditions are checked
before any mutation; ``TransferFailed`` is the only error raised after
bookkeeping has been touched, and the raising operation restores its
prior state first.
"""

from __future__ import annotations


class StakingError(ValueError):
    """Base class for every engine failure."""


class InvalidParameters(StakingError):
    """Initial economic parameters were not all strictly positive."""


class Unauthorized(StakingError):
    """The authorization gate refused a privileged operation."""


class StakingInProgress(StakingError):
    """The account already holds an active position."""


class NoActiveStake(StakingError):
    """The account holds no active position."""


class PeriodIncomplete(StakingError):
    """The lock duration has not fully elapsed."""


class CooldownActive(StakingError):
    """The claim cooldown has not elapsed since the last claim."""


class NoRewardsAvailable(StakingError):
    """The computed reward is zero."""


class ExceedsMaxDuration(StakingError):
    """The requested lock duration is above the current maximum."""


class ZeroAmount(StakingError):
    """A deposit of zero was requested."""


class NotInitialized(StakingError):
    """The NFT pool has not been initialized."""


class NotTokenOwner(StakingError):
    """The caller does not own the asset it tried to stake."""


class NotStaker(StakingError):
    """The asset is not staked by the caller."""


class TransferFailed(StakingError):
    """The value or custody collaborator rejected a transfer."""


class ArithmeticOverflow(StakingError):
    """An intermediate result left the fixed integer width."""


class ReentrantCall(StakingError):
    """A nested operation was attempted for an account already in flight."""


class InvariantViolation(StakingError):
    """A post-operation consistency check failed."""
