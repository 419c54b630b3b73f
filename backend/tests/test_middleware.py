"""Tests for logging, metrics path normalization and request context headers."""

import json
import logging

import pytest
from starlette.requests import Request
from starlette.responses import PlainTextResponse

from app.auth.jwt import create_access_token
from app.middleware.logging_config import JSONFormatter
from app.middleware.metrics import _normalize_path
from app.middleware.rate_limit import RateLimitMiddleware


def _request(headers: dict | None = None, client=("10.0.0.7", 5000)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/api/complaints",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


class TestJSONFormatter:
    def test_emits_one_json_object(self):
        record = logging.LogRecord("app.test", logging.INFO, __file__, 1, "Complaint %s filed", (42,), None)
        record.duration_ms = 12.5
        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "Complaint 42 filed"
        assert entry["level"] == "INFO"
        assert entry["duration_ms"] == 12.5
        assert entry["request_id"] is None


class TestNormalizePath:
    @pytest.mark.parametrize("raw,expected", [
        ("/api/complaints/42/responses", "/api/complaints/{id}/responses"),
        ("/api/agencies/7", "/api/agencies/{id}"),
        ("/api/complaints", "/api/complaints"),
    ])
    def test_collapses_ids(self, raw, expected):
        assert _normalize_path(raw) == expected


class TestRateLimitKey:
    def test_anonymous_keyed_by_ip(self):
        assert RateLimitMiddleware._client_key(_request()) == "ratelimit:ip:10.0.0.7"

    def test_verified_token_keyed_by_subject(self):
        token = create_access_token(42, "CITIZEN")
        key = RateLimitMiddleware._client_key(_request({"Authorization": f"Bearer {token}"}))
        assert key == "ratelimit:user:42"

    @pytest.mark.parametrize("bearer", ["abc.def.0123456789abcdef", "not-a-jwt", ""])
    def test_unverified_bearer_falls_back_to_ip(self, bearer):
        key = RateLimitMiddleware._client_key(_request({"Authorization": f"Bearer {bearer}"}))
        assert key == "ratelimit:ip:10.0.0.7"


class _SortedSetPipeline:
    """Just enough of a redis pipeline for the sliding window."""

    def __init__(self, store: dict):
        self.store = store
        self.ops = []

    def zremrangebyscore(self, key, low, high):
        self.ops.append(lambda: 0)  # every request here is inside the window

    def zadd(self, key, mapping):
        self.ops.append(lambda: self.store.setdefault(key, {}).update(mapping))

    def zcard(self, key):
        self.ops.append(lambda: len(self.store.get(key, {})))

    def expire(self, key, seconds):
        self.ops.append(lambda: True)

    async def execute(self):
        return [op() for op in self.ops]


class _SortedSetRedis:
    def __init__(self):
        self.store: dict = {}

    def pipeline(self):
        return _SortedSetPipeline(self.store)


@pytest.mark.asyncio
class TestRateLimitDispatch:
    async def test_rotating_bearer_strings_share_the_ip_bucket(self):
        limiter = RateLimitMiddleware(None, limit=3)
        limiter._redis = _SortedSetRedis()

        async def call_next(request):
            return PlainTextResponse("ok")

        statuses = []
        for i in range(5):
            request = _request({"Authorization": f"Bearer forged-{i}-{i * 7919:016d}"})
            statuses.append((await limiter.dispatch(request, call_next)).status_code)

        assert statuses == [200, 200, 200, 429, 429]
        assert list(limiter._redis.store) == ["ratelimit:ip:10.0.0.7"]


@pytest.mark.asyncio
class TestRequestContext:
    async def test_request_id_and_security_headers(self, client):
        resp = await client.get("/api/health", headers={"X-Request-ID": "req-123"})
        assert resp.headers["X-Request-ID"] == "req-123"
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["Cache-Control"] == "no-store"
