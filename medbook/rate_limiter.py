"""
Hybrid in-memory + Redis rate limiting utilities
Counters live in process memory and are synced to Redis periodically when REDIS_URL is set
"""

import logging
import time
from threading import Lock
from typing import Optional

import redis
from fastapi import HTTPException, Request

from .config import RATE_LIMIT_ENABLED, REDIS_URL

logger = logging.getLogger(__name__)

# Redis connection
redis_client: Optional[redis.Redis] = None
redis_unavailable = False

# Format: {key: {'count': int, 'reset_time': int, 'last_redis_sync': int}}
memory_cache: dict[str, dict] = {}
cache_lock = Lock()

MEMORY_CACHE_SYNC_INTERVAL = 10  # Sync to Redis every 10 seconds
MEMORY_CACHE_CLEANUP_INTERVAL = 60  # Clean up expired entries every 60 seconds
last_cleanup_time = 0


def get_redis_client() -> Optional[redis.Redis]:
    """Get or create the Redis client; None when Redis is not configured or unreachable"""
    global redis_client, redis_unavailable

    if redis_client is not None or redis_unavailable or not REDIS_URL:
        return redis_client

    logger.info("🔄 Initializing Redis connection for rate limiting...")
    try:
        client = redis.from_url(
            REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=15,
            socket_timeout=30,
            retry_on_timeout=True,
            health_check_interval=30,
            max_connections=20,
        )
        client.ping()
        redis_client = client
        logger.info("Redis connected successfully via URL")
    except Exception as e:
        redis_unavailable = True
        logger.error(f"❌ Failed to connect to Redis: {str(e)}")
        logger.warning("⚠️ Rate limiting continues with per-process memory counters only")

    return redis_client


def cleanup_expired_cache():
    """Remove expired entries from memory cache"""
    global last_cleanup_time
    current_time = int(time.time())

    if current_time - last_cleanup_time < MEMORY_CACHE_CLEANUP_INTERVAL:
        return

    with cache_lock:
        expired_keys = [k for k, v in memory_cache.items() if current_time >= v.get("reset_time", 0)]
        for k in expired_keys:
            del memory_cache[k]

        if expired_keys:
            logger.debug(f"🧹 Cleaned up {len(expired_keys)} expired rate limit entries")

    last_cleanup_time = current_time


def _new_entry(key: str, window_seconds: int, current_time: int, client: Optional[redis.Redis]) -> dict:
    if client is not None:
        try:
            redis_count = client.get(key)
            redis_ttl = client.ttl(key)
            if redis_count and redis_ttl > 0:
                return {
                    "count": int(redis_count),
                    "reset_time": current_time + redis_ttl,
                    "last_redis_sync": current_time,
                }
        except Exception as e:
            logger.warning(f"⚠️ Failed to load from Redis, using memory only: {e}")

    return {"count": 0, "reset_time": current_time + window_seconds, "last_redis_sync": current_time}


def check_rate_limit(
    key: str, limit: int, window_seconds: int, client: Optional[redis.Redis] = None
) -> tuple[bool, int, int]:
    """
    Check if rate limit is exceeded

    Returns:
        Tuple of (is_allowed, current_count, ttl_seconds)
    """
    current_time = int(time.time())
    cleanup_expired_cache()

    with cache_lock:
        if key not in memory_cache:
            memory_cache[key] = _new_entry(key, window_seconds, current_time, client)

        cache_entry = memory_cache[key]

        if current_time >= cache_entry["reset_time"]:
            cache_entry["count"] = 0
            cache_entry["reset_time"] = current_time + window_seconds
            cache_entry["last_redis_sync"] = 0

        is_allowed = cache_entry["count"] < limit
        if is_allowed:
            cache_entry["count"] += 1

        time_since_sync = current_time - cache_entry.get("last_redis_sync", 0)
        if client is not None and time_since_sync >= MEMORY_CACHE_SYNC_INTERVAL:
            try:
                client.set(key, cache_entry["count"], ex=window_seconds)
                cache_entry["last_redis_sync"] = current_time
                logger.debug(f"📡 Synced {key} to Redis: {cache_entry['count']}/{limit}")
            except Exception as e:
                logger.warning(f"⚠️ Failed to sync to Redis: {e}")

        ttl = cache_entry["reset_time"] - current_time
        return is_allowed, cache_entry["count"], max(0, ttl)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def rate_limit_dependency(request: Request, limit: int, window_seconds: int, key_prefix: str = "rate_limit"):
    """Per-IP rate limit; raises 429 with Retry-After once the window is exhausted"""
    if not RATE_LIMIT_ENABLED:
        return

    key = f"{key_prefix}:{client_ip(request)}"
    is_allowed, current_count, ttl = check_rate_limit(key, limit, window_seconds, get_redis_client())

    if not is_allowed:
        logger.warning(f"🚫 Rate limit EXCEEDED for {key} - {current_count}/{limit} requests used")
        raise HTTPException(
            status_code=429,
            detail={
                "message": f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                "retry_after": ttl,
                "limit": limit,
                "window_seconds": window_seconds,
            },
            headers={"Retry-After": str(ttl)},
        )

    request.state.rate_limit_remaining = limit - current_count
    request.state.rate_limit_limit = limit


def create_rate_limiter(limit: int, window_seconds: int, key_prefix: str = "rate_limit"):
    """
    Create a rate limiter dependency with specific parameters

    Example usage:
        rate_limit_login = create_rate_limiter(limit=10, window_seconds=300, key_prefix="login")

        @router.post("/login")
        async def login(data: LoginRequest, _: None = Depends(rate_limit_login)):
            ...
    """

    async def rate_limiter(request: Request):
        return await rate_limit_dependency(request, limit, window_seconds, key_prefix)

    return rate_limiter


# Shared limiters
rate_limit_auth = create_rate_limiter(limit=10, window_seconds=300, key_prefix="auth")
rate_limit_password_reset = create_rate_limiter(limit=5, window_seconds=3600, key_prefix="password_reset")
rate_limit_checkout = create_rate_limiter(limit=20, window_seconds=600, key_prefix="checkout")
rate_limit_webhook = create_rate_limiter(limit=300, window_seconds=60, key_prefix="webhook")
