from __future__ import annotations

"""
AIM — HTTP Rate Limiting (SlowAPI)
==================================

- Per-user keying when identity resolution set `request.state.user_id`,
  else per-client-IP (X-Forwarded-For / X-Real-IP / client.host).
- In-memory storage by default; Redis or any `limits` URI via
  `RATELIMIT_STORAGE_URI`.
- `RATE_LIMIT_ENABLED=false` at startup turns the limiter off entirely.
- Per-route limits also consult `RATE_LIMIT_ENABLED` and
  `RATE_LIMIT_TEST_BYPASS=1` at request time, so test suites can toggle
  without re-importing.

Usage
-----
    from aim.core.limiter import install_rate_limiter, rate_limit

    @router.post("/music/{asset_id}")
    @rate_limit("10/minute")
    async def upload(request: Request, response: Response, ...): ...
"""

import os
from typing import Callable, List

from dotenv import load_dotenv
from loguru import logger
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.requests import Request

load_dotenv()

_TRUTHY = {"1", "true", "yes", "on"}

DEFAULT_LIMIT = os.getenv("DEFAULT_RATE_LIMIT", "100/minute").strip()
STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "").strip() or "memory://"


def _client_ip(request: Request) -> str:
    xff = request.headers.get("x-forwarded-for")
    if xff:
        ip = xff.split(",")[0].strip()
        if ip:
            return ip
    xri = request.headers.get("x-real-ip")
    if xri:
        return xri.strip()
    return get_remote_address(request) or "unknown"


def get_rate_limit_key(request: Request) -> str:
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"
    return f"ip:{_client_ip(request)}"


def limits_disabled() -> bool:
    """Evaluated per request so env changes apply without re-import."""
    if not _env_enabled():
        return True
    return os.getenv("RATE_LIMIT_TEST_BYPASS", "").strip().lower() in _TRUTHY


def _env_enabled() -> bool:
    return os.getenv("RATE_LIMIT_ENABLED", "true").strip().lower() == "true"


def _default_limits() -> List[str]:
    return [chunk.strip() for chunk in DEFAULT_LIMIT.split(",") if chunk.strip()]


limiter = Limiter(
    key_func=get_rate_limit_key,
    default_limits=_default_limits(),
    enabled=_env_enabled(),
    headers_enabled=True,
    storage_uri=STORAGE_URI,
)


def rate_limit(*limits: str) -> Callable:
    """Apply per-route limits; `@rate_limit("10/minute", "2/second")`."""
    selected = list(limits) or _default_limits()

    def _apply(fn: Callable) -> Callable:
        for limit_value in reversed(selected):
            fn = limiter.limit(limit_value, exempt_when=limits_disabled)(fn)
        return fn

    return _apply


def install_rate_limiter(app) -> None:
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    logger.info("SlowAPI limiter installed | default={} | storage={}", _default_limits(), STORAGE_URI.split("://")[0])


def rate_limit_exempt() -> Callable:
    """Exclude a route (probes) from default limits."""
    return limiter.exempt
