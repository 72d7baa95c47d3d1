"""
In-memory fixed-window rate limiting, exposed as FastAPI dependencies.

Counters live in this process only; run a single worker or accept that each
worker enforces its own budget.
"""

import logging
import time
from threading import Lock

from fastapi import Request

from app import config
from app.errors import RateLimitError

logger = logging.getLogger(__name__)

# Format: {key: {'count': int, 'reset_time': int}}
memory_cache: dict[str, dict] = {}
cache_lock = Lock()

CLEANUP_INTERVAL = 60
last_cleanup_time = 0


def cleanup_expired_cache():
    """Remove expired entries from memory cache"""
    global last_cleanup_time
    current_time = int(time.time())

    if current_time - last_cleanup_time < CLEANUP_INTERVAL:
        return

    with cache_lock:
        expired_keys = [k for k, v in memory_cache.items() if current_time >= v["reset_time"]]
        for k in expired_keys:
            del memory_cache[k]

    last_cleanup_time = current_time


def check_rate_limit(key: str, limit: int, window_seconds: int) -> tuple[bool, int, int]:
    """Count one hit against ``key``. Returns (is_allowed, current_count, ttl_seconds)."""
    current_time = int(time.time())
    cleanup_expired_cache()

    with cache_lock:
        entry = memory_cache.get(key)
        if entry is None or current_time >= entry["reset_time"]:
            entry = {"count": 0, "reset_time": current_time + window_seconds}
            memory_cache[key] = entry

        is_allowed = entry["count"] < limit
        if is_allowed:
            entry["count"] += 1

        return is_allowed, entry["count"], max(0, entry["reset_time"] - current_time)


def reset_rate_limits():
    with cache_lock:
        memory_cache.clear()


def client_ip(request: Request) -> str:
    if config.TRUST_PROXY:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def create_rate_limiter(limit: int, window_seconds: int, key_prefix: str = "rate_limit", message: str = None):
    """
    Build a dependency enforcing ``limit`` requests per ``window_seconds`` per client IP.

    Example usage:
        @router.post("/login")
        def login(data: LoginRequest, _: None = Depends(auth_limiter)):
            ...
    """

    def rate_limiter(request: Request):
        if not config.RATE_LIMIT_ENABLED:
            return

        key = f"{key_prefix}:{client_ip(request)}"
        is_allowed, current_count, ttl = check_rate_limit(key, limit, window_seconds)
        if not is_allowed:
            logger.warning(f"Rate limit exceeded for {key} - {current_count}/{limit} requests used, retry in {ttl}s")
            raise RateLimitError(message or "Too many requests, please try again later")

    return rate_limiter


general_limiter = create_rate_limiter(config.RATE_LIMIT_MAX_REQUESTS, config.RATE_LIMIT_WINDOW_SECONDS, "general")
auth_limiter = create_rate_limiter(5, 15 * 60, "auth", "Too many authentication attempts, please try again later")
password_reset_limiter = create_rate_limiter(3, 60 * 60, "password_reset", "Too many password reset requests, please try again later")
verification_limiter = create_rate_limiter(3, 60 * 60, "verification", "Too many verification emails requested, please try again later")
upload_limiter = create_rate_limiter(10, 60 * 60, "upload", "Upload limit reached, please try again later")
search_limiter = create_rate_limiter(30, 60, "search")
payment_limiter = create_rate_limiter(10, 15 * 60, "payment", "Too many payment attempts, please try again later")
