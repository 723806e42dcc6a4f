"""Redis fixed-window counters for the external API."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import redis
from redis.exceptions import RedisError

from ..config import settings

logger = logging.getLogger(__name__)

_redis_client = None

_MINUTE = 60
_HOUR = 3600


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at_ms: int


def _get_redis():
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis_client


def _incr_with_ttl(key: str, ttl_seconds: int) -> tuple[int, int]:
    """
    Increment a Redis counter and ensure it has an expiry.
    Returns (value, ttl_remaining_seconds).
    """
    r = _get_redis()
    value = r.incr(key)
    if value == 1:
        r.expire(key, ttl_seconds)
    ttl = r.ttl(key)
    if ttl is None or ttl < 0:
        ttl = ttl_seconds
    return int(value), int(ttl)


def check_api_key_rate_limit(api_key_id: str) -> RateLimitResult:
    """Count one request against the per-minute burst and hourly windows of a key."""
    hourly_limit = settings.EXTERNAL_API_REQUESTS_PER_HOUR
    burst_limit = settings.EXTERNAL_API_BURST_PER_MINUTE
    now_ms = int(time.time() * 1000)

    try:
        minute_count, minute_ttl = _incr_with_ttl(f"extapi:rl:minute:{api_key_id}", _MINUTE)
        hour_count, hour_ttl = _incr_with_ttl(f"extapi:rl:hour:{api_key_id}", _HOUR)
    except RedisError:
        logger.exception("Redis error during external API rate limiting (fail-open)")
        return RateLimitResult(
            allowed=True,
            limit=hourly_limit,
            remaining=hourly_limit,
            reset_at_ms=now_ms + _HOUR * 1000,
        )

    if minute_count > burst_limit:
        return RateLimitResult(
            allowed=False,
            limit=hourly_limit,
            remaining=max(0, hourly_limit - hour_count),
            reset_at_ms=now_ms + minute_ttl * 1000,
        )
    if hour_count > hourly_limit:
        return RateLimitResult(
            allowed=False,
            limit=hourly_limit,
            remaining=0,
            reset_at_ms=now_ms + hour_ttl * 1000,
        )
    return RateLimitResult(
        allowed=True,
        limit=hourly_limit,
        remaining=max(0, hourly_limit - hour_count),
        reset_at_ms=now_ms + hour_ttl * 1000,
    )
