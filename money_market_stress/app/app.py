"""
app.py
aiohttp application: routes, CORS, rate limiting and error mapping.

Routes:
    GET /api/market-data[?region=US|EMEA|ALL]
    GET /api/historical-data?days=1..1825
    GET /api/repo-rates
    GET /api/reserve-scarcity
    GET /api/fed-facilities
    GET /api/money-market-spreads
    GET /api/stress-indicators
    GET /api/health

Errors are always JSON: {"error": ..., "message": ...}.
"""

import logging
from typing import Optional

from aiohttp import web

from ..config import Settings
from ..data.scraping_infrastructure import RateLimiter
from ..errors import InvalidInput
from .service import REGION_ALL, MarketMonitor

logger = logging.getLogger(__name__)

MAX_HISTORY_DAYS = 1825
DEFAULT_HISTORY_DAYS = 30
RATE_LIMIT_EXEMPT = ("/api/health",)

MONITOR_KEY = web.AppKey("monitor", MarketMonitor)
LIMITER_KEY = web.AppKey("rate_limiter", RateLimiter)
SETTINGS_KEY = web.AppKey("settings", Settings)


# ============================================================================
# PARAMETER PARSING
# ============================================================================

def parse_region(raw: Optional[str], valid: list) -> str:
    if raw is None or raw == "":
        return REGION_ALL
    region = raw.strip().upper()
    if region not in valid:
        raise InvalidInput(f"Invalid region '{raw}'. Valid values: {', '.join(valid)}")
    return region


def parse_days(raw: Optional[str]) -> int:
    if raw is None or raw == "":
        return DEFAULT_HISTORY_DAYS
    try:
        days = int(raw)
    except (TypeError, ValueError):
        raise InvalidInput(f"Invalid days '{raw}'. Must be a positive integer up to {MAX_HISTORY_DAYS}")
    if days <= 0:
        raise InvalidInput(f"Invalid days '{raw}'. Must be a positive integer up to {MAX_HISTORY_DAYS}")
    return min(days, MAX_HISTORY_DAYS)


def error_response(status: int, error: str, message: str) -> web.Response:
    return web.json_response({"error": error, "message": message}, status=status)


def client_id(request: web.Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.remote or "unknown"


# ============================================================================
# MIDDLEWARES
# ============================================================================

@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except InvalidInput as e:
        return error_response(400, "Bad Request", e.message)
    except web.HTTPException as e:
        if e.status < 400:
            raise
        return error_response(e.status, e.reason, e.text or e.reason)
    except Exception:
        logger.exception(f"Unhandled error on {request.method} {request.path_qs}")
        return error_response(500, "Internal Server Error", "An unexpected error occurred")


@web.middleware
async def rate_limit_middleware(request: web.Request, handler):
    if request.path in RATE_LIMIT_EXEMPT or request.method == "OPTIONS":
        return await handler(request)
    limiter = request.app[LIMITER_KEY]
    if not limiter.admit(client_id(request)):
        return error_response(
            429,
            "Too Many Requests",
            f"Rate limit of {limiter.capacity} requests per {limiter.window:.0f}s exceeded",
        )
    return await handler(request)


def cors_middleware(origins: list):
    allow_any = "*" in origins

    def apply_headers(request: web.Request, response: web.StreamResponse):
        origin = request.headers.get("Origin")
        if origin and (allow_any or origin in origins):
            response.headers["Access-Control-Allow-Origin"] = "*" if allow_any else origin
            response.headers["Vary"] = "Origin"
        return response

    @web.middleware
    async def middleware(request: web.Request, handler):
        if request.method == "OPTIONS":
            response = web.Response(status=204)
            response.headers["Access-Control-Allow-Methods"] = "GET, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            return apply_headers(request, response)
        response = await handler(request)
        return apply_headers(request, response)

    return middleware


# ============================================================================
# HANDLERS
# ============================================================================

async def handle_market_data(request: web.Request) -> web.Response:
    monitor = request.app[MONITOR_KEY]
    region = parse_region(request.query.get("region"), monitor.valid_regions())
    return web.json_response(await monitor.market_data(region))


async def handle_historical_data(request: web.Request) -> web.Response:
    days = parse_days(request.query.get("days"))
    return web.json_response(await request.app[MONITOR_KEY].historical_data(days))


async def handle_repo_rates(request: web.Request) -> web.Response:
    return web.json_response(await request.app[MONITOR_KEY].repo_rates())


async def handle_reserve_scarcity(request: web.Request) -> web.Response:
    return web.json_response(await request.app[MONITOR_KEY].reserve_scarcity())


async def handle_fed_facilities(request: web.Request) -> web.Response:
    return web.json_response(await request.app[MONITOR_KEY].fed_facilities())


async def handle_money_market_spreads(request: web.Request) -> web.Response:
    return web.json_response(await request.app[MONITOR_KEY].money_market_spreads())


async def handle_stress_indicators(request: web.Request) -> web.Response:
    return web.json_response(await request.app[MONITOR_KEY].stress_indicators())


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response(request.app[MONITOR_KEY].health())


# ============================================================================
# APPLICATION
# ============================================================================

def create_app(
    settings: Optional[Settings] = None,
    monitor: Optional[MarketMonitor] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> web.Application:
    """
    Build the aiohttp application.

    Parameters
    ----------
    settings : Settings, optional
        Defaults to ``Settings.from_env()``
    monitor : MarketMonitor, optional
        Pre-built pipeline (tests inject one with fake providers)
    rate_limiter : RateLimiter, optional
        Request admission control (default: settings window/capacity)

    Returns
    -------
    web.Application
    """
    settings = settings or Settings.from_env()
    monitor = monitor or MarketMonitor.from_settings(settings)
    rate_limiter = rate_limiter or RateLimiter(settings.rate_limit_window, settings.rate_limit_capacity)

    app = web.Application(middlewares=[
        cors_middleware(settings.cors_origins),
        error_middleware,
        rate_limit_middleware,
    ])
    app[SETTINGS_KEY] = settings
    app[MONITOR_KEY] = monitor
    app[LIMITER_KEY] = rate_limiter

    app.router.add_get("/api/market-data", handle_market_data)
    app.router.add_get("/api/historical-data", handle_historical_data)
    app.router.add_get("/api/repo-rates", handle_repo_rates)
    app.router.add_get("/api/reserve-scarcity", handle_reserve_scarcity)
    app.router.add_get("/api/fed-facilities", handle_fed_facilities)
    app.router.add_get("/api/money-market-spreads", handle_money_market_spreads)
    app.router.add_get("/api/stress-indicators", handle_stress_indicators)
    app.router.add_get("/api/health", handle_health)

    app.on_startup.append(_on_startup)
    app.on_cleanup.append(_on_cleanup)
    return app


async def _on_startup(app: web.Application):
    await app[MONITOR_KEY].start()
    app[LIMITER_KEY].start()
    logger.info("Money-market stress API started")


async def _on_cleanup(app: web.Application):
    await app[LIMITER_KEY].stop()
    await app[MONITOR_KEY].close()
    logger.info("Money-market stress API stopped")
