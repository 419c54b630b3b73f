"""
Redis-backed sliding window rate limiter middleware.

Counts requests per client per minute in a Redis sorted set. When Redis is
unreachable the limiter fails open; it never blocks the complaint workflow.
Disabled entirely with RATE_LIMIT_ENABLED=false.
"""

import time
import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

import redis.asyncio as aioredis
from jose import JWTError

from app.auth.jwt import decode_access_token
from app.config import settings

logger = logging.getLogger(__name__)

# Paths exempt from rate limiting
EXEMPT_PATHS = frozenset({"/api/health", "/metrics"})


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, limit: int | None = None, window: int = 60):
        super().__init__(app)
        self._redis: aioredis.Redis | None = None
        self.limit = limit or settings.rate_limit_per_minute
        self.window = window  # seconds

    async def _get_redis(self) -> aioredis.Redis | None:
        if self._redis is None:
            try:
                self._redis = aioredis.from_url(
                    settings.redis_url, decode_responses=True
                )
                await self._redis.ping()
            except (aioredis.RedisError, OSError) as exc:
                logger.warning("Rate limiter: Redis unavailable (%s), passing through", exc)
                self._redis = None
        return self._redis

    @staticmethod
    def _client_key(request: Request) -> str:
        # Only a verified token earns its own bucket; anything else is keyed by IP
        auth = request.headers.get("Authorization", "")
        if auth.startswith("Bearer "):
            try:
                subject = decode_access_token(auth[7:]).get("sub")
            except JWTError:
                subject = None
            if subject:
                return f"ratelimit:user:{subject}"
        client_ip = request.client.host if request.client else "unknown"
        return f"ratelimit:ip:{client_ip}"

    async def dispatch(self, request: Request, call_next):
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        r = await self._get_redis()
        if r is None:
            return await call_next(request)

        now = time.time()
        key = self._client_key(request)

        try:
            pipe = r.pipeline()
            pipe.zremrangebyscore(key, 0, now - self.window)
            pipe.zadd(key, {str(now): now})
            pipe.zcard(key)
            pipe.expire(key, self.window)
            results = await pipe.execute()
            request_count = results[2]
        except (aioredis.RedisError, OSError) as exc:
            logger.warning("Rate limiter Redis error: %s", exc)
            return await call_next(request)

        if request_count > self.limit:
            logger.info("Rate limit exceeded for %s (%d/%ds)", key, request_count, self.window)
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests. Please try again later.", "error": "rate_limited"},
                headers={"Retry-After": str(self.window)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self.limit - request_count))
        return response
