#!/usr/bin/env python3
"""
Run a StakeFlow engine behind its REST API.

The engine is built with in-memory collaborators (role registry,
treasury, NFT registry), so state lives only as long as the process.

Usage:
    python run_server.py --config stakeflow.toml
    python run_server.py --port 8081 --api-key secret --fund-reserve 1000000
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os

from stakeflow_core.api import APIServer
from stakeflow_core.config import load_config
from stakeflow_core.engine import StakingEngine
from stakeflow_core.logging_config import setup_logging
from stakeflow_core.precision import format_units

logger = logging.getLogger("stakeflow.server")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="StakeFlow staking engine server")
    p.add_argument("--config", default=os.environ.get("STAKEFLOW_CONFIG"),
                   help="Path to stakeflow.toml config file")
    p.add_argument("--host", default=None, help="API listen host")
    p.add_argument("--port", type=int, default=None, help="API listen port")
    p.add_argument("--api-key", default=None, help="Require this X-API-Key on POST")
    p.add_argument("--admin", action="append", default=[],
                   help="Account holding every privilege (repeatable)")
    p.add_argument("--fund-reserve", type=int, default=0,
                   help="Extra reward reserve credited to engine custody")
    return p.parse_args(argv)


async def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)

    # Load config (TOML + env overrides), then CLI flags on top
    cfg = load_config(args.config)
    if args.host:
        cfg.api.host = args.host
    if args.port is not None:
        cfg.api.port = args.port
    if args.api_key:
        cfg.api.api_key = args.api_key
    if args.admin:
        cfg.engine.admins = [*cfg.engine.admins, *args.admin]
    cfg.engine.reward_reserve += args.fund_reserve

    setup_logging(cfg.logging.level, cfg.logging.format, cfg.logging.file)

    engine = StakingEngine.from_config(cfg)
    logger.info(
        f"Engine ready: max period {cfg.economics.max_staking_period} days, "
        f"yield {cfg.economics.annual_yield_percentage}%, "
        f"reserve {format_units(cfg.engine.reward_reserve)}"
    )
    if not cfg.engine.admins:
        logger.warning("No admins configured — privileged endpoints will refuse every caller")

    if not cfg.api.enabled:
        logger.warning("API disabled in config; nothing to serve")
        return

    api = APIServer(engine, cfg.api.host, cfg.api.port, api_config=cfg.api)
    await api.start()
    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        await api.stop()


def main_sync():
    """Synchronous entry point for console_scripts."""
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(main())


if __name__ == "__main__":
    main_sync()
