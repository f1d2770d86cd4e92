import json
import threading
from collections import OrderedDict
from time import time
from typing import Dict, Tuple
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
import logging
import redis

from config.settings import settings
from utils.errors import DemoLimitReached

logger = logging.getLogger(__name__)

# Initialize Redis when configured
_redis_client = None
_redis_available = False

if settings.redis_url:
    try:
        # Parse Redis URL (supports redis:// and redis://:password@host:port)
        _redis_client = redis.from_url(settings.redis_url, decode_responses=True)
        # Test connection
        _redis_client.ping()
        _redis_available = True
        logger.info("✅ Redis connected successfully for rate limiting")
    except redis.RedisError as e:
        logger.warning(f"⚠️ Redis connection failed: {e}. Falling back to in-memory rate limiting.")
        _redis_client = None
        _redis_available = False
else:
    logger.info("ℹ️ REDIS_URL not set. Using in-memory rate limiting.")


class RateLimiterMiddleware(BaseHTTPMiddleware):
    """
    Distributed rate limiter using Redis (with fallback to in-memory).
    Uses Token Bucket Algorithm.
    Default: RATE_LIMIT_PER_MINUTE requests per 60 seconds per IP.
    """

    def __init__(self, app, requests_per_minute: int = None):
        super().__init__(app)
        self.capacity = requests_per_minute or settings.rate_limit_per_minute
        self.refill_time_window = 60.0
        # Fallback: in-memory storage (ip -> (tokens, last_refill_ts))
        self._buckets: Dict[str, Tuple[float, float]] = {}
        self._use_redis = _redis_available and _redis_client is not None

    def _get_client_ip(self, request: Request) -> str:
        xff = request.headers.get("x-forwarded-for")
        if xff:
            # Take first IP in the list
            return xff.split(",")[0].strip()
        client = request.client
        return client.host if client else "unknown"

    def _get_redis_key(self, ip: str) -> str:
        """Generate Redis key for rate limiting"""
        return f"rate_limit:{ip}"

    def _refill(self, tokens: float, last_refill: float, now: float) -> float:
        elapsed = max(0.0, now - last_refill)
        refill = (elapsed / self.refill_time_window) * self.capacity
        return min(self.capacity, tokens + refill)

    async def _check_rate_limit_redis(self, ip: str):
        """
        Check rate limit using Redis.
        Returns True if allowed, False if rate limited, None if Redis failed.
        """
        try:
            key = self._get_redis_key(ip)
            now = time()

            bucket_data = _redis_client.get(key)
            if bucket_data:
                # Parse stored data: {"tokens": float, "last_refill": float}
                data = json.loads(bucket_data)
                tokens = float(data.get("tokens", 0))
                last_refill = float(data.get("last_refill", now))
            else:
                # New bucket, start with full capacity
                tokens = float(self.capacity)
                last_refill = now

            tokens = self._refill(tokens, last_refill, now)
            if tokens < 1.0:
                return False

            tokens -= 1.0
            bucket_data = json.dumps({"tokens": tokens, "last_refill": now})
            _redis_client.setex(key, int(self.refill_time_window) + 10, bucket_data)
            return True

        except redis.RedisError as e:
            logger.warning(f"Redis rate limit check failed: {e}. Falling back to in-memory.")
            return None

    async def _check_rate_limit_memory(self, ip: str) -> bool:
        """
        Check rate limit using in-memory storage (fallback).
        Returns True if request is allowed, False if rate limited.
        """
        now = time()
        tokens, last_refill = self._buckets.get(ip, (self.capacity, now))
        tokens = self._refill(tokens, last_refill, now)

        if tokens < 1.0:
            return False

        self._buckets[ip] = (tokens - 1.0, now)
        return True

    async def dispatch(self, request: Request, call_next) -> Response:
        ip = self._get_client_ip(request)

        allowed = None
        if self._use_redis:
            allowed = await self._check_rate_limit_redis(ip)
        if allowed is None:
            allowed = await self._check_rate_limit_memory(ip)

        if not allowed:
            return JSONResponse(
                status_code=429,
                content={"error": "Rate limit exceeded. Try again shortly."},
            )

        return await call_next(request)


class DemoUsageLimiter:
    """
    Fixed-count limiter for the account-less demo.

    Counts are kept per client IP and per kind ("message" or "audio") for
    DEMO_WINDOW_SECONDS, in Redis with expiring keys when available and in a
    bounded in-memory map otherwise. Never persisted; shares nothing with the
    credit ledger.
    """

    def __init__(
        self,
        max_messages: int = None,
        max_audio_requests: int = None,
        window_seconds: int = None,
        max_entries: int = None,
        use_redis: bool = None,
    ):
        self.limits = {
            "message": max_messages if max_messages is not None else settings.demo_max_messages,
            "audio": max_audio_requests if max_audio_requests is not None else settings.demo_max_audio_requests,
        }
        self.window_seconds = window_seconds or settings.demo_window_seconds
        self.max_entries = max_entries or settings.demo_max_tracked_clients
        self._use_redis = (_redis_available and _redis_client is not None) if use_redis is None else use_redis
        # (client_key, kind) -> (used, window_start); insertion order is window_start order
        self._counts: "OrderedDict[Tuple[str, str], Tuple[int, float]]" = OrderedDict()
        self._lock = threading.Lock()

    def _consume_redis(self, client_key: str, kind: str, limit: int):
        """
        Count the request in Redis.
        Returns remaining requests, or None if Redis failed.
        """
        key = f"demo_usage:{kind}:{client_key}"
        try:
            used = _redis_client.incr(key)
            if used == 1:
                _redis_client.expire(key, self.window_seconds)
        except redis.RedisError as e:
            logger.warning(f"Redis demo limit check failed: {e}. Falling back to in-memory.")
            return None
        if used > limit:
            logger.info(f"Demo limit reached | client={client_key} kind={kind}")
            raise DemoLimitReached()
        return limit - used

    def _prune(self, now: float) -> None:
        while self._counts:
            _, (_, started) = next(iter(self._counts.items()))
            if now - started < self.window_seconds:
                break
            self._counts.popitem(last=False)

    def _consume_memory(self, client_key: str, kind: str, limit: int, now: float) -> int:
        with self._lock:
            self._prune(now)
            entry = (client_key, kind)
            used, started = self._counts.get(entry, (0, now))
            if used >= limit:
                logger.info(f"Demo limit reached | client={client_key} kind={kind}")
                raise DemoLimitReached()
            if entry not in self._counts and len(self._counts) >= self.max_entries:
                self._counts.popitem(last=False)
            self._counts[entry] = (used + 1, started)
            return limit - used - 1

    def consume(self, client_key: str, kind: str, now: float = None) -> int:
        """
        Count one demo request.

        Returns:
            Remaining requests of this kind for the client in the current window

        Raises:
            DemoLimitReached: When the client already used its allowance
        """
        limit = self.limits[kind]
        if self._use_redis:
            remaining = self._consume_redis(client_key, kind, limit)
            if remaining is not None:
                return remaining
        return self._consume_memory(client_key, kind, limit, now if now is not None else time())

    def reset(self) -> None:
        """Forget the in-memory counts. Redis keys expire on their own."""
        with self._lock:
            self._counts.clear()


# Shared instance used by the request handlers
demo_limiter = DemoUsageLimiter()
