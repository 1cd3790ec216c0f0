"""
Rate Limiting Middleware

Per-tenant rate limiting using Redis.

ARCHITECTURE: fixed one-minute window per tenant code. Each request does an
INCR on `rate_limit:{tenant_code}:{minute}`; the first hit of a window sets
the key's expiry.

TRADEOFF: Fixed windows allow a burst of up to twice the limit across a
window boundary. That is acceptable for abuse protection and costs a single
round trip per request.

PRODUCTION NOTES:
- Redis is single point of failure (use Redis Cluster/Sentinel)
- When Redis is unreachable requests are allowed through (fail open)
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from typing import Optional
import redis.asyncio as aioredis
from redis.exceptions import RedisError
import time
import logging
from tenant_api.config import get_settings
from tenant_api.core.exceptions import RateLimitExceeded
from tenant_api.utils.logging import log_security_event

logger = logging.getLogger(__name__)
settings = get_settings()

WINDOW_SECONDS = 60


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Fixed-window rate limiter per tenant.

    Must run inside TenantMiddleware: it keys on the tenant context that
    middleware attaches. Requests without a context are not limited.
    """

    def __init__(
        self,
        app,
        redis_client=None,
        limit_per_minute: Optional[int] = None,
        enabled: Optional[bool] = None,
    ):
        super().__init__(app)
        self.enabled = settings.RATE_LIMIT_ENABLED if enabled is None else enabled
        self.limit = limit_per_minute or settings.RATE_LIMIT_PER_MINUTE

        # from_url does not connect; the pool connects on first command
        self.redis_client = redis_client
        if self.enabled and self.redis_client is None:
            self.redis_client = aioredis.from_url(
                settings.REDIS_URL,
                decode_responses=True,
                socket_connect_timeout=5
            )

    async def dispatch(self, request: Request, call_next):
        """Apply rate limiting per tenant."""
        if not self.enabled:
            return await call_next(request)

        context = getattr(request.state, "tenant_context", None)
        if not context:
            return await call_next(request)

        allowed, retry_after = await self._check_rate_limit(context.tenant_code)

        if not allowed:
            log_security_event(
                "rate_limit_exceeded",
                {"tenant_code": context.tenant_code, "path": request.url.path},
                logger
            )
            exc = RateLimitExceeded(retry_after=retry_after)
            return JSONResponse(
                status_code=exc.status_code,
                content={"error": exc.detail, "retryAfter": retry_after},
                headers=exc.headers
            )

        return await call_next(request)

    async def _check_rate_limit(self, tenant_code: str) -> tuple[bool, int]:
        """
        Count this request against the tenant's current window.

        Returns: (allowed: bool, retry_after: int)
        """
        now = time.time()
        window = int(now // WINDOW_SECONDS)
        key = f"rate_limit:{tenant_code}:{window}"

        try:
            count = await self.redis_client.incr(key)
            if count == 1:
                await self.redis_client.expire(key, WINDOW_SECONDS)
        except RedisError as e:
            # TRADEOFF: We choose availability over strict rate limiting
            logger.error(f"Redis error in rate limiting: {e}")
            return True, 0

        if count > self.limit:
            retry_after = max(1, WINDOW_SECONDS - int(now % WINDOW_SECONDS))
            return False, retry_after

        return True, 0
