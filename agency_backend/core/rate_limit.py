import asyncio
import logging
import time
from typing import Dict, Optional, Tuple

import redis.asyncio as redis_async
from fastapi import Request

from agency_backend.core.config import settings
from agency_backend.core.exceptions import RateLimitExceeded
from agency_backend.services.audit_service import RequestContext, audit_service

logger = logging.getLogger(__name__)


class RateLimitStore:
    """Fixed-window request counters keyed by scope and client.

    Uses Redis when REDIS_URL is configured, otherwise an in-memory dict with
    periodic cleanup, which is enough for a single worker process.
    """

    def __init__(self, redis_url: Optional[str] = None):
        self._use_redis = bool(redis_url)
        if self._use_redis:
            self._client = redis_async.from_url(redis_url)
        else:
            # key -> (count, window_expires_at)
            self._store: Dict[str, Tuple[int, float]] = {}
            self._lock = asyncio.Lock()
            self._cleanup_task: Optional[asyncio.Task] = None

    def _ensure_cleanup(self):
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())

    async def get(self, key: str) -> Tuple[int, int]:
        """Return (count, seconds until the window resets)."""
        if self._use_redis:
            raw = await self._client.get(key)
            ttl = await self._client.ttl(key)
            return (int(raw) if raw else 0, max(int(ttl), 0))

        async with self._lock:
            entry = self._store.get(key)
            now = time.monotonic()
            if not entry or entry[1] <= now:
                return 0, 0
            return entry[0], int(entry[1] - now) + 1

    async def hit(self, key: str, window_seconds: int) -> Tuple[int, int]:
        """Count one request and return (count, seconds until the window resets)."""
        if self._use_redis:
            count = await self._client.incr(key)
            if count == 1:
                await self._client.expire(key, window_seconds)
            ttl = await self._client.ttl(key)
            return int(count), max(int(ttl), 0)

        self._ensure_cleanup()
        async with self._lock:
            now = time.monotonic()
            count, expires_at = self._store.get(key, (0, 0.0))
            if expires_at <= now:
                count, expires_at = 0, now + window_seconds
            count += 1
            self._store[key] = (count, expires_at)
            return count, int(expires_at - now) + 1

    async def reset(self, key: Optional[str] = None):
        if self._use_redis:
            if key:
                await self._client.delete(key)
            return
        async with self._lock:
            if key:
                self._store.pop(key, None)
            else:
                self._store.clear()

    async def _cleanup_loop(self):
        try:
            while True:
                await asyncio.sleep(60)
                now = time.monotonic()
                async with self._lock:
                    keys_to_delete = [k for k, (_, exp) in self._store.items() if exp <= now]
                    for k in keys_to_delete:
                        del self._store[k]
        except asyncio.CancelledError:
            return


# Singleton instance
_STORE: Optional[RateLimitStore] = None


def get_rate_limit_store() -> RateLimitStore:
    global _STORE
    if _STORE is None:
        _STORE = RateLimitStore(settings.REDIS_URL or None)
    return _STORE


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RateLimiter:
    """FastAPI dependency limiting requests per client IP within a fixed window.

    With ``count_failures_only`` the dependency only checks the budget; the
    route calls :meth:`record_failure` when an attempt fails.
    """

    def __init__(self, scope: str, max_requests: int, window_seconds: int, message: str,
                 count_failures_only: bool = False):
        self.scope = scope
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.message = message
        self.count_failures_only = count_failures_only

    def key_for(self, request: Request) -> str:
        return f"ratelimit:{self.scope}:{client_ip(request)}"

    async def __call__(self, request: Request):
        if not settings.RATE_LIMIT_ENABLED:
            return
        store = get_rate_limit_store()
        key = self.key_for(request)
        if self.count_failures_only:
            count, retry_after = await store.get(key)
            if count >= self.max_requests:
                await self._on_limited(request)
                raise RateLimitExceeded(self.message, retry_after=retry_after)
            return
        count, retry_after = await store.hit(key, self.window_seconds)
        if count > self.max_requests:
            logger.warning("Rate limit hit for scope=%s ip=%s", self.scope, client_ip(request))
            await self._on_limited(request)
            raise RateLimitExceeded(self.message, retry_after=retry_after)

    async def record_failure(self, request: Request):
        if not settings.RATE_LIMIT_ENABLED:
            return
        await get_rate_limit_store().hit(self.key_for(request), self.window_seconds)

    async def _on_limited(self, request: Request):
        return None


class LoginRateLimiter(RateLimiter):
    """Counts failed logins only and audits every blocked attempt."""

    def __init__(self):
        super().__init__(
            scope="auth",
            max_requests=settings.AUTH_RATE_LIMIT_MAX_ATTEMPTS,
            window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
            message="Too many login attempts. Please try again in 15 minutes.",
            count_failures_only=True,
        )

    async def _on_limited(self, request: Request):
        await audit_service.log_failed_login(None, RequestContext.from_request(request),
                                             reason="Rate limit exceeded", status_code=429)


api_limiter = RateLimiter(
    scope="api",
    max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
    window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
    message="Too many requests from this IP, please try again later.",
)
admin_limiter = RateLimiter(
    scope="admin",
    max_requests=settings.ADMIN_RATE_LIMIT_MAX_REQUESTS,
    window_seconds=settings.ADMIN_RATE_LIMIT_WINDOW_SECONDS,
    message="Too many admin operations, please slow down.",
)
password_reset_limiter = RateLimiter(
    scope="password-reset",
    max_requests=settings.PASSWORD_RESET_RATE_LIMIT_MAX,
    window_seconds=settings.PASSWORD_RESET_RATE_LIMIT_WINDOW_SECONDS,
    message="Too many password reset attempts. Please try again in an hour.",
)
login_limiter = LoginRateLimiter()
