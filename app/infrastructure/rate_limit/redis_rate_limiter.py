from __future__ import annotations

import logging

import redis

from app.application.ports.rate_limiter import RateLimiterPort


class RedisRateLimiter(RateLimiterPort):
    """Fixed-window counter shared across instances. Fails open when Redis is down."""

    def __init__(self, client: redis.Redis, max_requests: int, window_seconds: int, prefix: str = "ratelimit") -> None:
        self._client = client
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._prefix = prefix
        self._logger = logging.getLogger(__name__)

    @classmethod
    def from_url(cls, url: str, max_requests: int, window_seconds: int) -> "RedisRateLimiter":
        client = redis.from_url(url, decode_responses=True, socket_connect_timeout=5, socket_timeout=5)
        return cls(client, max_requests, window_seconds)

    def check(self, key: str) -> bool:
        redis_key = f"{self._prefix}:{key}"
        try:
            pipe = self._client.pipeline()
            pipe.incr(redis_key)
            pipe.expire(redis_key, self._window_seconds, nx=True)
            count, _ = pipe.execute()
        except redis.RedisError as e:
            self._logger.warning("Rate limiter unavailable; allowing request", extra={"key": key, "error": str(e)})
            return True
        return int(count) <= self._max_requests
