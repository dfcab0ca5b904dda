"""
TOML-based configuration for StakeFlow.

Loads settings from a TOML file and/or environment variables.
Environment variables take precedence over file values.

Usage:
    from stakeflow_core.config import load_config
    cfg = load_config("stakeflow.toml")
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


@dataclass
class EconomicsConfig:
    """Initial token staking parameters (all must be positive)."""
    max_staking_period: int = 365       # days
    boost_coefficient: int = 5
    claim_cooldown_days: int = 7
    annual_yield_percentage: int = 100


@dataclass
class NFTPoolConfig:
    """Pooled NFT reward settings."""
    rewards_per_day: int = 10
    # Initialize the pool at startup on behalf of the first admin.
    auto_initialize: bool = True


@dataclass
class EngineConfig:
    """Engine behaviour and operator identities."""
    check_invariants: bool = False
    admins: list[str] = field(default_factory=list)
    # Reward reserve credited to engine custody at startup (in-memory treasury).
    reward_reserve: int = 0


@dataclass
class APIConfig:
    """REST API settings."""
    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 8080
    api_key: str = ""                 # require this key on POST endpoints (empty = no auth)
    rate_limit_rpm: int = 120          # max requests per minute per IP (0 = unlimited)
    cors_origins: list[str] = field(default_factory=list)
    max_body_bytes: int = 65_536


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    format: str = "human"   # "human" or "json"
    file: str | None = None


@dataclass
class StakeFlowConfig:
    """Top-level configuration container."""
    economics: EconomicsConfig = field(default_factory=EconomicsConfig)
    nft_pool: NFTPoolConfig = field(default_factory=NFTPoolConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    api: APIConfig = field(default_factory=APIConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _merge(dc: Any, raw: dict[str, Any]) -> None:
    """Merge a raw dict into a dataclass instance (in-place)."""
    for key, value in raw.items():
        key_under = key.replace("-", "_")
        if hasattr(dc, key_under):
            setattr(dc, key_under, value)


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


def load_config(path: str | None = None) -> StakeFlowConfig:
    """
    Load configuration from a TOML file, then overlay environment variables.

    Env-var mapping:
        STAKEFLOW_HOST              -> api.host
        STAKEFLOW_API_PORT          -> api.port
        STAKEFLOW_API_KEY           -> api.api_key
        STAKEFLOW_CORS_ORIGINS      -> api.cors_origins   (comma-separated)
        STAKEFLOW_ADMINS            -> engine.admins      (comma-separated)
        STAKEFLOW_CHECK_INVARIANTS  -> engine.check_invariants
        STAKEFLOW_LOG_LEVEL         -> logging.level
        STAKEFLOW_LOG_FMT           -> logging.format
    """
    cfg = StakeFlowConfig()

    # ── TOML file ────────────────────────────────────────────────
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                data = tomllib.load(f)
            for section_name, section_dc in [
                ("economics", cfg.economics),
                ("nft_pool", cfg.nft_pool),
                ("engine", cfg.engine),
                ("api", cfg.api),
                ("logging", cfg.logging),
            ]:
                if section_name in data:
                    _merge(section_dc, data[section_name])

    # ── Environment variable overrides ───────────────────────────
    if v := os.environ.get("STAKEFLOW_HOST"):
        cfg.api.host = v
    if v := os.environ.get("STAKEFLOW_API_PORT"):
        cfg.api.port = int(v)
    if v := os.environ.get("STAKEFLOW_API_KEY"):
        cfg.api.api_key = v
    if v := os.environ.get("STAKEFLOW_CORS_ORIGINS"):
        cfg.api.cors_origins = _env_list(v)
    if v := os.environ.get("STAKEFLOW_ADMINS"):
        cfg.engine.admins = _env_list(v)
    if v := os.environ.get("STAKEFLOW_CHECK_INVARIANTS"):
        cfg.engine.check_invariants = _env_bool(v)
    if v := os.environ.get("STAKEFLOW_LOG_LEVEL"):
        cfg.logging.level = v.upper()
    if v := os.environ.get("STAKEFLOW_LOG_FMT"):
        cfg.logging.format = v

    return cfg
