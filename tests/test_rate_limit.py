"""Tests for the per-tenant rate limiting middleware."""

from unittest.mock import patch

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError
from starlette.middleware.base import BaseHTTPMiddleware

from tenant_api.core.context import RequestTenantContext
from tenant_api.middleware.rate_limit import RateLimitMiddleware

FROZEN_NOW = 1_700_000_010.0  # 30 seconds before the next window


class FakeRedis:
    def __init__(self) -> None:
        self.counts: dict[str, int] = {}
        self.expiries: dict[str, int] = {}

    async def incr(self, key: str) -> int:
        self.counts[key] = self.counts.get(key, 0) + 1
        return self.counts[key]

    async def expire(self, key: str, seconds: int) -> bool:
        self.expiries[key] = seconds
        return True


class BrokenRedis:
    async def incr(self, key: str) -> int:
        raise RedisConnectionError("connection refused")


class HeaderTenantMiddleware(BaseHTTPMiddleware):
    """Stands in for TenantMiddleware: trusts the header as-is."""

    async def dispatch(self, request, call_next):
        code = request.headers.get("X-Tenant-Code")
        if code:
            request.state.tenant_context = RequestTenantContext(code, f"{code}_db", "sqlite://")
        return await call_next(request)


def _app(redis_client, limit: int = 2) -> FastAPI:
    app = FastAPI()

    @app.get("/ping")
    async def ping() -> dict:
        return {"ok": True}

    app.add_middleware(RateLimitMiddleware, redis_client=redis_client, limit_per_minute=limit, enabled=True)
    app.add_middleware(HeaderTenantMiddleware)
    return app


def _client(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


class TestRateLimitMiddleware:
    @pytest.mark.asyncio
    async def test_blocks_after_limit(self) -> None:
        redis_client = FakeRedis()
        with patch("tenant_api.middleware.rate_limit.time") as fake_time:
            fake_time.time.return_value = FROZEN_NOW
            async with _client(_app(redis_client)) as client:
                responses = [await client.get("/ping", headers={"X-Tenant-Code": "acme"}) for _ in range(3)]

        assert [r.status_code for r in responses] == [200, 200, 429]
        blocked = responses[-1]
        assert blocked.headers["Retry-After"] == "30"
        assert blocked.json() == {
            "error": "Rate limit exceeded. Please try again later.",
            "retryAfter": 30,
        }
        assert list(redis_client.expiries.values()) == [60]

    @pytest.mark.asyncio
    async def test_tenants_have_separate_windows(self) -> None:
        with patch("tenant_api.middleware.rate_limit.time") as fake_time:
            fake_time.time.return_value = FROZEN_NOW
            async with _client(_app(FakeRedis(), limit=1)) as client:
                acme = await client.get("/ping", headers={"X-Tenant-Code": "acme"})
                globex = await client.get("/ping", headers={"X-Tenant-Code": "globex"})
                acme_again = await client.get("/ping", headers={"X-Tenant-Code": "acme"})

        assert acme.status_code == 200
        assert globex.status_code == 200
        assert acme_again.status_code == 429

    @pytest.mark.asyncio
    async def test_fails_open_when_redis_is_down(self) -> None:
        async with _client(_app(BrokenRedis(), limit=1)) as client:
            responses = [await client.get("/ping", headers={"X-Tenant-Code": "acme"}) for _ in range(3)]

        assert all(r.status_code == 200 for r in responses)

    @pytest.mark.asyncio
    async def test_requests_without_tenant_are_not_counted(self) -> None:
        redis_client = FakeRedis()
        async with _client(_app(redis_client, limit=1)) as client:
            responses = [await client.get("/ping") for _ in range(3)]

        assert all(r.status_code == 200 for r in responses)
        assert redis_client.counts == {}
