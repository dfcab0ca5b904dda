"""
StakeFlow - a staking-and-reward accounting engine.

Key features:
- Lock-up token staking with a duration-dependent dynamic boost
- Integer fixed-point reward arithmetic, checked against a 256-bit width
- Pooled NFT staking with lazily accrued, proportionally shared rewards
- Atomic operations with rollback on failed external transfers
- Per-account reentrancy guard and optional invariant checking
- aiohttp REST API with API-key, rate-limit and CORS middleware
"""

__version__ = "0.3.0"
__all__ = [
    "errors",
    "precision",
    "parameters",
    "rewards",
    "staking",
    "nft_staking",
    "engine",
    "collaborators",
    "nftoken",
    "invariants",
    "guard",
    "logging_config",
    "config",
    "api",
]
