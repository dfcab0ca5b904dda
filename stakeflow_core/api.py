"""
REST / HTTP API server for the StakeFlow engine.

Built on ``aiohttp``.

Endpoints
---------
GET  /health                  Liveness check
GET  /params                  Current economic parameters
GET  /summary                 Engine-wide totals
GET  /stake/{account}         Position, stake amount and computed reward
GET  /reward/{account}        Computed reward for the account's position
GET  /boost/{duration}        Dynamic boost multiplier for a lock duration
GET  /nft/{account}           NFT pool record for an account
GET  /nft                     NFT pool summary
POST /stake/open              {"amount", "duration"}
POST /stake/claim             {}
POST /stake/close             {}
POST /nft/stake               {"asset_id"}
POST /nft/unstake             {"asset_id"}
POST /nft/claim               {}
POST /admin/params            {"<parameter>": value, ...}
POST /admin/nft/initialize    {"rewards_per_day"}
POST /admin/drain             {"recipient", "amount"}

The acting account is taken from the ``X-Account`` header.  Every POST
body may carry ``"now"`` (integer seconds); otherwise the server clock
is used.

Security
--------
- API-key authentication on POST endpoints via ``X-API-Key`` header only.
  Timing-safe comparison via ``hmac.compare_digest``.
- Per-IP token-bucket rate limiter (configurable RPM).
- CORS middleware (origins configurable via ``cors_origins``).
- Request body size cap (``max_body_bytes``).
- Privileged routes are additionally checked by the engine's
  authorization gate against ``X-Account``.

Usage:
    api = APIServer(engine, host="127.0.0.1", port=8080)
    await api.start()    # call inside existing event loop
    ...
    await api.stop()
"""

from __future__ import annotations

import hmac
import json
import logging
import time
from collections import defaultdict
from typing import TYPE_CHECKING, Any

from aiohttp import web

from stakeflow_core.errors import (
    NoActiveStake,
    NotStaker,
    ReentrantCall,
    StakingError,
    TransferFailed,
    Unauthorized,
)
from stakeflow_core.parameters import UPDATABLE_PARAMETERS

if TYPE_CHECKING:
    from stakeflow_core.config import APIConfig
    from stakeflow_core.engine import StakingEngine

logger = logging.getLogger("stakeflow_api")

_STATUS_FOR_ERROR: dict[type, int] = {
    Unauthorized: 403,
    NoActiveStake: 404,
    NotStaker: 404,
    ReentrantCall: 409,
    TransferFailed: 502,
}


# ═══════════════════════════════════════════════════════════════════
#  Input helpers
# ═══════════════════════════════════════════════════════════════════

def _safe_int(value: Any, name: str = "value") -> int:
    """Convert *value* to a non-negative int, rejecting floats and junk."""
    if isinstance(value, bool) or isinstance(value, float):
        raise web.HTTPBadRequest(text=f"{name} must be an integer")
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise web.HTTPBadRequest(text=f"{name} must be an integer")
    if n < 0:
        raise web.HTTPBadRequest(text=f"{name} must be non-negative")
    return n


async def _json_body(request: web.Request) -> dict:
    if not request.can_read_body:
        return {}
    try:
        body = await request.json()
    except ValueError as exc:
        raise web.HTTPBadRequest(text="Invalid JSON body") from exc
    if not isinstance(body, dict):
        raise web.HTTPBadRequest(text="JSON body must be an object")
    return body


def _caller(request: web.Request) -> str:
    account = request.headers.get("X-Account", "").strip()
    if not account:
        raise web.HTTPBadRequest(text="X-Account header required")
    return account


def _now(body: dict) -> int:
    if "now" in body:
        return _safe_int(body["now"], "now")
    return int(time.time())


def _error_response(exc: StakingError) -> web.Response:
    status = 400
    for cls, code in _STATUS_FOR_ERROR.items():
        if isinstance(exc, cls):
            status = code
            break
    return web.json_response(
        {"error": type(exc).__name__, "message": str(exc)}, status=status,
    )


def _json_dumps(obj: Any) -> str:
    return json.dumps(obj, default=str)


# ═══════════════════════════════════════════════════════════════════
#  Rate Limiter (per-IP token bucket)
# ═══════════════════════════════════════════════════════════════════

class _TokenBucket:
    """Simple per-IP token-bucket rate limiter."""

    __slots__ = ("_buckets", "_rpm")

    def __init__(self, rpm: int):
        self._rpm = rpm  # 0 = unlimited
        # ip -> (tokens, last_refill_timestamp)
        self._buckets: dict[str, list[float]] = defaultdict(lambda: [float(rpm), time.monotonic()])

    def allow(self, ip: str) -> bool:
        if self._rpm <= 0:
            return True
        bucket = self._buckets[ip]
        now = time.monotonic()
        elapsed = now - bucket[1]
        bucket[0] = min(float(self._rpm), bucket[0] + elapsed * (self._rpm / 60.0))
        bucket[1] = now
        if bucket[0] >= 1.0:
            bucket[0] -= 1.0
            return True
        return False


# ═══════════════════════════════════════════════════════════════════
#  Middleware factories
# ═══════════════════════════════════════════════════════════════════

def _make_rate_limit_middleware(bucket: _TokenBucket):
    """aiohttp middleware that enforces per-IP rate limits."""

    @web.middleware
    async def rate_limit_middleware(request: web.Request, handler):
        ip = request.remote or "unknown"
        if not bucket.allow(ip):
            raise web.HTTPTooManyRequests(
                text="Rate limit exceeded. Try again later.",
                headers={"Retry-After": "5"},
            )
        return await handler(request)

    return rate_limit_middleware


def _make_api_key_middleware(api_key: str):
    """aiohttp middleware that requires an API key on POST.

    Only the ``X-API-Key`` header is read, never a query parameter.
    """

    @web.middleware
    async def api_key_middleware(request: web.Request, handler):
        if request.method in ("POST", "PUT", "DELETE"):
            key = request.headers.get("X-API-Key", "")
            if not hmac.compare_digest(key, api_key):
                raise web.HTTPUnauthorized(text="Invalid or missing API key")
        return await handler(request)

    return api_key_middleware


def _make_cors_middleware(origins: list[str]):
    """aiohttp middleware that adds CORS headers for listed origins.

    The ``*`` wildcard is ignored; origins must be listed explicitly.
    """

    allowed = set(origins) if origins else set()
    allowed.discard("*")

    @web.middleware
    async def cors_middleware(request: web.Request, handler):
        origin = request.headers.get("Origin", "")
        if request.method == "OPTIONS":
            resp = web.Response(status=204)
        else:
            resp = await handler(request)

        if origin in allowed:
            resp.headers["Access-Control-Allow-Origin"] = origin
            resp.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
            resp.headers["Access-Control-Allow-Headers"] = (
                "Content-Type, X-API-Key, X-Account"
            )
            resp.headers["Access-Control-Max-Age"] = "3600"
        return resp

    return cors_middleware


def build_middlewares(cfg: APIConfig | None) -> list:
    middlewares: list = []
    if cfg is None:
        return middlewares
    if cfg.rate_limit_rpm > 0:
        middlewares.append(_make_rate_limit_middleware(_TokenBucket(cfg.rate_limit_rpm)))
    if cfg.cors_origins:
        middlewares.append(_make_cors_middleware(cfg.cors_origins))
    if cfg.api_key:
        middlewares.append(_make_api_key_middleware(cfg.api_key))
    return middlewares


class APIServer:
    """Thin aiohttp wrapper around a :class:`StakingEngine`."""

    def __init__(
        self,
        engine: StakingEngine,
        host: str = "127.0.0.1",
        port: int = 8080,
        *,
        api_config: APIConfig | None = None,
    ):
        self.engine = engine
        self.host = host
        self.port = port
        self._api_config = api_config
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None

    def make_app(self) -> web.Application:
        max_body = 65_536
        if self._api_config is not None:
            max_body = self._api_config.max_body_bytes
        app = web.Application(
            middlewares=build_middlewares(self._api_config),
            client_max_size=max_body,
        )
        self._register_routes(app)
        self._app = app
        return app

    # ── lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        self._runner = web.AppRunner(self.make_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"API listening on http://{self.host}:{self.port}")

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            logger.info("API stopped")

    # ── routes ───────────────────────────────────────────────────

    def _register_routes(self, app: web.Application) -> None:
        app.router.add_get("/health", self._health)
        app.router.add_get("/params", self._params)
        app.router.add_get("/summary", self._summary)
        app.router.add_get("/stake/{account}", self._stake_info)
        app.router.add_get("/reward/{account}", self._reward_info)
        app.router.add_get("/boost/{duration}", self._boost_info)
        app.router.add_get("/nft/{account}", self._nft_account)
        app.router.add_get("/nft", self._nft_pool)
        # Token staking
        app.router.add_post("/stake/open", self._open_stake)
        app.router.add_post("/stake/claim", self._claim_stake)
        app.router.add_post("/stake/close", self._close_stake)
        # NFT staking
        app.router.add_post("/nft/stake", self._stake_nft)
        app.router.add_post("/nft/unstake", self._unstake_nft)
        app.router.add_post("/nft/claim", self._claim_nft)
        # Privileged
        app.router.add_post("/admin/params", self._admin_params)
        app.router.add_post("/admin/nft/initialize", self._admin_nft_initialize)
        app.router.add_post("/admin/drain", self._admin_drain)

    # ── queries ──────────────────────────────────────────────────

    async def _health(self, _request: web.Request) -> web.Response:
        return web.json_response({
            "status": "ok",
            "nft_pool_initialized": self.engine.nft_pool.initialized,
            "in_flight": self.engine.guard.active_count,
        })

    async def _params(self, _request: web.Request) -> web.Response:
        return web.json_response(self.engine.get_parameters().to_dict())

    async def _summary(self, _request: web.Request) -> web.Response:
        return web.json_response(self.engine.summary(), dumps=_json_dumps)

    async def _stake_info(self, request: web.Request) -> web.Response:
        """GET /stake/{account}"""
        account = request.match_info["account"]
        position = self.engine.get_position(account)
        return web.json_response({
            "account": account,
            "stake_amount": self.engine.get_stake_amount(account),
            "reward": self.engine.compute_reward(account),
            "position": position.to_dict(int(time.time())) if position else None,
        })

    async def _reward_info(self, request: web.Request) -> web.Response:
        account = request.match_info["account"]
        return web.json_response({
            "account": account,
            "reward": self.engine.compute_reward(account),
        })

    async def _boost_info(self, request: web.Request) -> web.Response:
        duration = _safe_int(request.match_info["duration"], "duration")
        try:
            boost = self.engine.compute_boost(duration)
        except StakingError as exc:
            return _error_response(exc)
        return web.json_response({"duration": duration, "boost_multiplier": boost})

    async def _nft_account(self, request: web.Request) -> web.Response:
        account = request.match_info["account"]
        info = self.engine.nft_pool.account_info(account, int(time.time()))
        return web.json_response(info)

    async def _nft_pool(self, _request: web.Request) -> web.Response:
        return web.json_response(self.engine.nft_pool.get_summary())

    # ── token staking ────────────────────────────────────────────

    async def _open_stake(self, request: web.Request) -> web.Response:
        """
        POST /stake/open
        Body: {"amount": 100, "duration": 30}
        """
        account = _caller(request)
        body = await _json_body(request)
        if "amount" not in body or "duration" not in body:
            raise web.HTTPBadRequest(text="amount and duration required")
        amount = _safe_int(body["amount"], "amount")
        duration = _safe_int(body["duration"], "duration")
        try:
            position = self.engine.open_stake(account, amount, duration, _now(body))
        except StakingError as exc:
            return _error_response(exc)
        return web.json_response({"status": "opened", "position": position.to_dict()})

    async def _claim_stake(self, request: web.Request) -> web.Response:
        account = _caller(request)
        body = await _json_body(request)
        try:
            amount = self.engine.claim_rewards(account, _now(body))
        except StakingError as exc:
            return _error_response(exc)
        return web.json_response({"status": "claimed", "amount": amount})

    async def _close_stake(self, request: web.Request) -> web.Response:
        account = _caller(request)
        body = await _json_body(request)
        try:
            payout = self.engine.close_stake(account, _now(body))
        except StakingError as exc:
            return _error_response(exc)
        return web.json_response({"status": "closed", "payout": payout})

    # ── NFT staking ──────────────────────────────────────────────

    async def _stake_nft(self, request: web.Request) -> web.Response:
        account = _caller(request)
        body = await _json_body(request)
        asset_id = str(body.get("asset_id", ""))
        if not asset_id:
            raise web.HTTPBadRequest(text="asset_id required")
        try:
            self.engine.stake_nft(account, asset_id, _now(body))
        except StakingError as exc:
            return _error_response(exc)
        return web.json_response({
            "status": "staked",
            "asset_id": asset_id,
            "total_nfts_staked": self.engine.total_nfts_staked,
        })

    async def _unstake_nft(self, request: web.Request) -> web.Response:
        account = _caller(request)
        body = await _json_body(request)
        asset_id = str(body.get("asset_id", ""))
        if not asset_id:
            raise web.HTTPBadRequest(text="asset_id required")
        try:
            self.engine.unstake_nft(account, asset_id, _now(body))
        except StakingError as exc:
            return _error_response(exc)
        return web.json_response({
            "status": "unstaked",
            "asset_id": asset_id,
            "total_nfts_staked": self.engine.total_nfts_staked,
        })

    async def _claim_nft(self, request: web.Request) -> web.Response:
        account = _caller(request)
        body = await _json_body(request)
        try:
            amount = self.engine.claim_nft_rewards(account, _now(body))
        except StakingError as exc:
            return _error_response(exc)
        return web.json_response({"status": "claimed", "amount": amount})

    # ── privileged ───────────────────────────────────────────────

    async def _admin_params(self, request: web.Request) -> web.Response:
        """
        POST /admin/params
        Body: {"max_staking_period": 180, "claim_cooldown_days": 3, ...}
        """
        caller = _caller(request)
        body = await _json_body(request)
        body.pop("now", None)
        if not body:
            raise web.HTTPBadRequest(text="no parameters given")
        unknown = sorted(set(body) - set(UPDATABLE_PARAMETERS))
        if unknown:
            raise web.HTTPBadRequest(text=f"Unknown parameter(s): {', '.join(unknown)}")
        changes = {k: _safe_int(v, k) for k, v in body.items()}
        try:
            params = self.engine.update_parameters(caller, **changes)
        except StakingError as exc:
            return _error_response(exc)
        return web.json_response({"status": "updated", "parameters": params.to_dict()})

    async def _admin_nft_initialize(self, request: web.Request) -> web.Response:
        caller = _caller(request)
        body = await _json_body(request)
        if "rewards_per_day" not in body:
            raise web.HTTPBadRequest(text="rewards_per_day required")
        rate = _safe_int(body["rewards_per_day"], "rewards_per_day")
        try:
            self.engine.initialize_nft_pool(caller, rate)
        except StakingError as exc:
            return _error_response(exc)
        return web.json_response({"status": "initialized", "rewards_per_day": rate})

    async def _admin_drain(self, request: web.Request) -> web.Response:
        caller = _caller(request)
        body = await _json_body(request)
        recipient = str(body.get("recipient", ""))
        if not recipient or "amount" not in body:
            raise web.HTTPBadRequest(text="recipient and amount required")
        amount = _safe_int(body["amount"], "amount")
        try:
            self.engine.emergency_drain(caller, recipient, amount)
        except StakingError as exc:
            return _error_response(exc)
        return web.json_response({"status": "drained", "recipient": recipient, "amount": amount})
