# aim/security_headers.py
from __future__ import annotations

"""
Cache hardening for responses that carry signed or entitlement-specific URLs.

`set_sensitive_cache(response)` marks a response as `no-store`; a positive
`seconds` allows a short private cache that varies on credentials instead.
"""

from starlette.responses import Response


def set_sensitive_cache(response: Response, *, seconds: int = 0) -> None:
    if seconds <= 0:
        response.headers["Cache-Control"] = "no-store"
        response.headers["Pragma"] = "no-cache"
        response.headers["Expires"] = "0"
        return
    response.headers["Cache-Control"] = f"private, max-age={seconds}"
    vary = response.headers.get("Vary")
    needed = {"Authorization", "Cookie"}
    existing = {v.strip() for v in vary.split(",") if v.strip()} if vary else set()
    response.headers["Vary"] = ", ".join(sorted(existing | needed))


__all__ = ["set_sensitive_cache"]
