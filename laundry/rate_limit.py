"""
Per-client rate limiting for the API endpoints.

``RateLimiter.check`` is the single entry point: it records a hit for the
client key under a named preset and reports whether the request may proceed.
Counters live in whatever ``limits`` storage RATELIMIT_STORAGE_URI names.
The default ``memory://`` storage is per-process and forgets everything on
restart, so production deployments point it at Redis.
"""

import math
import time
import logging
from collections import namedtuple
from functools import wraps

from flask import current_app, jsonify, request
from limits import parse
from limits.storage import storage_from_string
from limits.strategies import MovingWindowRateLimiter

logger = logging.getLogger(__name__)

RATE_LIMITS = {
    "AUTH": "5 per 15 minutes",
    "PAYMENT": "10 per 5 minutes",
    "ORDER_CREATE": "20 per 10 minutes",
    "GENERAL": "60 per minute",
    "READ": "100 per minute",
    "WEBHOOK": "1000 per minute",
}

RateLimitResult = namedtuple("RateLimitResult", ["allowed", "remaining", "reset_at"])


def client_key():
    """Client identity: first forwarded IP, plus the user id when a valid token is sent."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    ip = (
        forwarded.split(",")[0].strip()
        or request.headers.get("X-Real-IP")
        or request.headers.get("CF-Connecting-IP")
        or request.remote_addr
        or "unknown"
    )

    from laundry.auth import bearer_user_id
    user_id = bearer_user_id()
    if user_id:
        return "{}:{}".format(ip, user_id)
    return ip


class RateLimiter:
    def __init__(self, storage_uri="memory://", presets=None, storage=None):
        self.storage = storage if storage is not None else storage_from_string(storage_uri)
        self.strategy = MovingWindowRateLimiter(self.storage)
        self.presets = {name: parse(value) for name, value in (presets or RATE_LIMITS).items()}

    def check(self, key, preset="GENERAL"):
        item = self.presets[preset]
        allowed = self.strategy.hit(item, preset, key)
        reset_at, remaining = self.strategy.get_window_stats(item, preset, key)
        if not allowed:
            logger.warning("Rate limit %s exceeded for %s", preset, key)
        return RateLimitResult(allowed, remaining, reset_at)

    def reset(self):
        self.storage.reset()


def init_rate_limiter(app, storage=None):
    """Register the preset limiter, on Flask-Limiter's storage when it has one."""
    app.extensions["rate_limiter"] = RateLimiter(
        app.config.get("RATELIMIT_STORAGE_URI", "memory://"), storage=storage
    )


def rate_limited(preset="GENERAL"):
    """Reject the request with 429 once the client exhausts ``preset``."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            limiter = current_app.extensions.get("rate_limiter")
            if limiter is None or not current_app.config.get("RATELIMIT_ENABLED", True):
                return f(*args, **kwargs)

            result = limiter.check(client_key(), preset)
            if not result.allowed:
                retry_after = max(1, math.ceil(result.reset_at - time.time()))
                response = jsonify({
                    "success": False,
                    "error": "Too many requests. Please try again later.",
                    "retryAfter": retry_after,
                })
                response.status_code = 429
                response.headers["Retry-After"] = str(retry_after)
                response.headers["X-RateLimit-Remaining"] = "0"
                return response
            return f(*args, **kwargs)
        return decorated_function
    return decorator
