"""
REST / HTTP API server for Sire nodes.

Built on ``aiohttp``; runs in the same event loop as the block clock.

Endpoints
---------
GET  /health                      Liveness and ledger height
GET  /status                      Ledger summary
GET  /balance/{asset}/{address}   Balance of one asset
GET  /supply/{asset}              Total supply of one asset
GET  /account/{address}           Both balances and the mint cursor
GET  /exchange                    Ether collected, cap, availability, rate
GET  /schedule                    Next adjustment height and yield rate
GET  /tx/{tx_id}                  Receipt of a committed call
POST /tx/deposit                  {"value"}                       signed
POST /tx/transfer                 {"asset", "destination", "amount"}  signed
POST /tx/mint                     {"target"} (defaults to caller)     signed

Write bodies are signed calls (see ``sire_core.wallet``); the caller is
the address recovered from the signature.  Amounts are wei, given as a
decimal-digit string or a JSON integer, and are always returned as
strings so clients never lose precision.

Security
--------
- API-key authentication on POST endpoints via ``X-API-Key`` header only.
  Timing-safe comparison via ``hmac.compare_digest``.
- Per-IP token-bucket rate limiter (configurable RPM).
- CORS middleware (origins configurable via ``cors_origins``).
- Request body size cap (``max_body_bytes``).
- Each signed call's nonce is accepted once per caller, and only while
  its millisecond timestamp is within ``NONCE_WINDOW_SECONDS`` of now.

Usage:
    api = APIServer(ledger, host="127.0.0.1", port=8545, api_config=cfg.api)
    await api.start()
    ...
    await api.stop()
"""

from __future__ import annotations

import asyncio
import hmac
import json
import logging
import re
import time
from collections import defaultdict
from typing import TYPE_CHECKING, Any

from aiohttp import web

from sire_core.errors import LedgerError
from sire_core.state import Asset
from sire_core.wallet import SignatureError, is_address, verify_call

if TYPE_CHECKING:
    from sire_core.config import APIConfig
    from sire_core.contract import SireLedger

logger = logging.getLogger("sire_api")

DEFAULT_MAX_BODY = 65_536
NONCE_WINDOW_SECONDS = 300

_DIGITS = re.compile(r"[0-9]+")


# ═══════════════════════════════════════════════════════════════════
#  Input helpers
# ═══════════════════════════════════════════════════════════════════

def _safe_wei(value: Any, name: str = "amount") -> int:
    """Parse a wei amount: a JSON integer or a string of decimal digits."""
    if isinstance(value, bool):
        raise web.HTTPBadRequest(text=f"{name} must be an integer wei amount")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str) and _DIGITS.fullmatch(value):
        result = int(value)
    else:
        raise web.HTTPBadRequest(text=f"{name} must be an integer wei amount")
    if result < 0:
        raise web.HTTPBadRequest(text=f"{name} must be non-negative")
    return result


def _safe_asset(value: Any) -> Asset:
    try:
        return Asset.parse(value)
    except (ValueError, TypeError):
        raise web.HTTPBadRequest(text=f"Unknown asset: {value}")


def _safe_address(value: Any, name: str = "address") -> str:
    if not is_address(value):
        raise web.HTTPBadRequest(text=f"{name} must be a 0x-prefixed 20-byte hex address")
    return value.lower()


def _json_dumps(obj: Any) -> str:
    """JSON serialiser that writes ints as strings (wei overflow JS numbers)."""
    return json.dumps(_stringify(obj), default=str)


def _stringify(obj: Any) -> Any:
    if isinstance(obj, bool) or obj is None:
        return obj
    if isinstance(obj, int):
        return str(obj)
    if isinstance(obj, dict):
        return {k: _stringify(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_stringify(v) for v in obj]
    return obj


def _error_response(exc: LedgerError) -> web.Response:
    return web.json_response({"error": exc.code, "message": str(exc)}, status=400)


# ═══════════════════════════════════════════════════════════════════
#  Rate Limiter (per-IP token bucket)
# ═══════════════════════════════════════════════════════════════════

class _TokenBucket:
    """Per-IP token bucket; ``rpm <= 0`` disables limiting."""

    __slots__ = ("_buckets", "_rpm")

    def __init__(self, rpm: int):
        self._rpm = rpm
        # ip -> [tokens, last_refill_timestamp]
        self._buckets: dict[str, list[float]] = defaultdict(lambda: [float(rpm), time.monotonic()])

    def allow(self, ip: str) -> bool:
        if self._rpm <= 0:
            return True
        bucket = self._buckets[ip]
        now = time.monotonic()
        bucket[0] = min(float(self._rpm), bucket[0] + (now - bucket[1]) * (self._rpm / 60.0))
        bucket[1] = now
        if bucket[0] >= 1.0:
            bucket[0] -= 1.0
            return True
        return False


class _NonceWindow:
    """
    Replay guard for signed calls.

    A nonce is ``"<unix-ms hex>.<random hex>"``.  Nonces stamped outside
    ``window`` seconds of now are refused, so only the nonces seen inside
    the window need remembering.
    """

    __slots__ = ("_seen", "_window")

    def __init__(self, window: float = NONCE_WINDOW_SECONDS):
        self._window = window
        # (caller, nonce) -> stamp in seconds
        self._seen: dict[tuple[str, str], float] = {}

    def __len__(self) -> int:
        return len(self._seen)

    @staticmethod
    def stamp(nonce: str) -> float:
        head, sep, _ = nonce.partition(".")
        if not sep or not re.fullmatch(r"[0-9a-f]{1,16}", head):
            raise ValueError("Nonce must be '<unix-ms hex>.<random hex>'")
        return int(head, 16) / 1000.0

    def check(self, caller: str, nonce: str, now: float | None = None) -> None:
        """Record the nonce; ``ValueError`` if malformed or stale, ``KeyError`` on replay."""
        now = time.time() if now is None else now
        stamp = self.stamp(nonce)
        if abs(now - stamp) > self._window:
            raise ValueError("Nonce outside the accepted time window")
        self._prune(now)
        key = (caller, nonce)
        if key in self._seen:
            raise KeyError(key)
        self._seen[key] = stamp

    def _prune(self, now: float) -> None:
        cutoff = now - self._window
        stale = [k for k, stamp in self._seen.items() if stamp < cutoff]
        for k in stale:
            del self._seen[k]


# ═══════════════════════════════════════════════════════════════════
#  Middleware factories
# ═══════════════════════════════════════════════════════════════════

def _make_rate_limit_middleware(bucket: _TokenBucket):
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
    """Require ``X-API-Key`` on POST.  The key is never read from the query string."""

    @web.middleware
    async def api_key_middleware(request: web.Request, handler):
        if request.method == "POST":
            key = request.headers.get("X-API-Key", "")
            if not hmac.compare_digest(key, api_key):
                raise web.HTTPUnauthorized(text="Invalid or missing API key")
        return await handler(request)

    return api_key_middleware


def _make_cors_middleware(origins: list[str]):
    """Add CORS headers for listed origins.  ``*`` is ignored."""

    allowed = set(origins)
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
            resp.headers["Access-Control-Allow-Headers"] = "Content-Type, X-API-Key"
            resp.headers["Access-Control-Max-Age"] = "3600"
        return resp

    return cors_middleware


class APIServer:
    """aiohttp front end for a ``SireLedger``."""

    def __init__(
        self,
        ledger: SireLedger,
        host: str = "127.0.0.1",
        port: int = 8545,
        *,
        api_config: APIConfig | None = None,
    ):
        self.ledger = ledger
        self.host = host
        self.port = port
        self._api_config = api_config
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None
        self._write_lock = asyncio.Lock()
        self._nonces = _NonceWindow()

    # ── lifecycle ────────────────────────────────────────────────

    def build_app(self) -> web.Application:
        """Application with the configured middlewares and all routes."""
        middlewares: list = []
        max_body = DEFAULT_MAX_BODY

        if self._api_config is not None:
            cfg = self._api_config
            max_body = cfg.max_body_bytes
            if cfg.rate_limit_rpm > 0:
                middlewares.append(_make_rate_limit_middleware(_TokenBucket(cfg.rate_limit_rpm)))
            if cfg.cors_origins:
                middlewares.append(_make_cors_middleware(cfg.cors_origins))
            if cfg.api_key:
                middlewares.append(_make_api_key_middleware(cfg.api_key))

        app = web.Application(middlewares=middlewares, client_max_size=max_body)
        self._register_routes(app)
        self._app = app
        return app

    async def start(self) -> None:
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"API listening on http://{self.host}:{self.port}")

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    # ── routes ───────────────────────────────────────────────────

    def _register_routes(self, app: web.Application) -> None:
        app.router.add_get("/health", self._health)
        app.router.add_get("/status", self._status)
        app.router.add_get("/balance/{asset}/{address}", self._balance)
        app.router.add_get("/supply/{asset}", self._supply)
        app.router.add_get("/account/{address}", self._account)
        app.router.add_get("/exchange", self._exchange)
        app.router.add_get("/schedule", self._schedule)
        app.router.add_get("/tx/{tx_id}", self._get_transaction)
        app.router.add_post("/tx/deposit", self._submit_deposit)
        app.router.add_post("/tx/transfer", self._submit_transfer)
        app.router.add_post("/tx/mint", self._submit_mint)

    # ── read handlers ────────────────────────────────────────────

    async def _health(self, _request: web.Request) -> web.Response:
        return web.json_response({
            "ok": True,
            "height": self.ledger.current_height(),
            "last_height": self.ledger.state.last_height,
        })

    async def _status(self, _request: web.Request) -> web.Response:
        summary = self.ledger.state.summary()
        summary["current_height"] = self.ledger.current_height()
        summary["policy"] = self.ledger.policy.name
        summary["transactions"] = len(self.ledger.history)
        return web.json_response(summary, dumps=_json_dumps)

    async def _balance(self, request: web.Request) -> web.Response:
        asset = _safe_asset(request.match_info["asset"])
        address = _safe_address(request.match_info["address"])
        return web.json_response({
            "address": address,
            "asset": asset.name.lower(),
            "balance": self.ledger.balance_of(asset, address),
        }, dumps=_json_dumps)

    async def _supply(self, request: web.Request) -> web.Response:
        asset = _safe_asset(request.match_info["asset"])
        return web.json_response({
            "asset": asset.name.lower(),
            "total_supply": self.ledger.total_supply(asset),
        }, dumps=_json_dumps)

    async def _account(self, request: web.Request) -> web.Response:
        address = _safe_address(request.match_info["address"])
        return web.json_response({
            "address": address,
            "sire_balance": self.ledger.balance_of(Asset.SIRE, address),
            "relic_balance": self.ledger.balance_of(Asset.RELIC, address),
            "last_mint_height": self.ledger.last_mint_height(address),
            "pending_relic": self.ledger.pending_relic(address),
        }, dumps=_json_dumps)

    async def _exchange(self, _request: web.Request) -> web.Response:
        return web.json_response({
            "ether_collected": self.ledger.ether_collected(),
            "max_ether_cap": self.ledger.max_ether_cap(),
            "exchange_available": self.ledger.exchange_available(),
            "exchange_rate": self.ledger.exchange_rate(),
        }, dumps=_json_dumps)

    async def _schedule(self, _request: web.Request) -> web.Response:
        return web.json_response({
            "current_height": self.ledger.current_height(),
            "next_adjustment_height": self.ledger.next_adjustment_height(),
            "adjustment_period": self.ledger.state.adjustment_period,
            "yield_rate_per_block": self.ledger.yield_rate_per_block(),
            "exchange_rate": self.ledger.exchange_rate(),
            "policy": self.ledger.policy.name,
        }, dumps=_json_dumps)

    async def _get_transaction(self, request: web.Request) -> web.Response:
        receipt = self.ledger.get_receipt(request.match_info["tx_id"])
        if receipt is None:
            raise web.HTTPNotFound(text="Transaction not found")
        return web.json_response(receipt.to_dict())

    # ── write handlers ───────────────────────────────────────────

    async def _authenticate(self, request: web.Request, method: str) -> tuple[str, dict]:
        """Return ``(caller, params)`` for a signed call, rejecting replays."""
        try:
            body = await request.json()
        except ValueError as exc:
            raise web.HTTPBadRequest(text="Invalid JSON body") from exc
        if not isinstance(body, dict):
            raise web.HTTPBadRequest(text="Body must be a JSON object")
        try:
            caller = verify_call(method, body)
        except SignatureError as exc:
            raise web.HTTPUnauthorized(text=str(exc))

        try:
            self._nonces.check(caller, body["nonce"])
        except KeyError:
            raise web.HTTPConflict(text="Nonce already used")
        except ValueError as exc:
            raise web.HTTPUnauthorized(text=str(exc))
        return caller, body["params"]

    async def _submit_deposit(self, request: web.Request) -> web.Response:
        """
        POST /tx/deposit
        Params: {"value": "<wei>"}
        """
        caller, params = await self._authenticate(request, "deposit")
        value = _safe_wei(params.get("value"), "value")
        async with self._write_lock:
            index = len(self.ledger.history)
            try:
                minted = self.ledger.deposit(caller, value)
            except LedgerError as exc:
                return _error_response(exc)
            receipt = self.ledger.history[index]
        return web.json_response({
            "status": "committed",
            "tx_id": receipt.tx_id,
            "sire_minted": minted,
        }, dumps=_json_dumps)

    async def _submit_transfer(self, request: web.Request) -> web.Response:
        """
        POST /tx/transfer
        Params: {"asset": "sire"|"relic", "destination": "0x...", "amount": "<wei>"}
        """
        caller, params = await self._authenticate(request, "transfer")
        asset = _safe_asset(params.get("asset"))
        destination = _safe_address(params.get("destination"), "destination")
        amount = _safe_wei(params.get("amount"), "amount")
        async with self._write_lock:
            index = len(self.ledger.history)
            try:
                self.ledger.transfer(asset, caller, destination, amount)
            except LedgerError as exc:
                return _error_response(exc)
            receipt = self.ledger.history[index]
        return web.json_response({
            "status": "committed",
            "tx_id": receipt.tx_id,
        })

    async def _submit_mint(self, request: web.Request) -> web.Response:
        """
        POST /tx/mint
        Params: {"target": "0x..."}  (optional, defaults to the caller)
        """
        caller, params = await self._authenticate(request, "mint")
        target = params.get("target") or caller
        target = _safe_address(target, "target")
        async with self._write_lock:
            index = len(self.ledger.history)
            try:
                minted = self.ledger.mint(caller, target)
            except LedgerError as exc:
                return _error_response(exc)
            receipt = self.ledger.history[index]
        return web.json_response({
            "status": "committed",
            "tx_id": receipt.tx_id,
            "relic_minted": minted,
        }, dumps=_json_dumps)
