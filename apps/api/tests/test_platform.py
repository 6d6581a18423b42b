"""
Tests for the application shell: health checks, security headers, error
rendering and the Redis rate limiter.
"""
from fastapi import FastAPI
from fastapi.testclient import TestClient

from core import rate_limit
from core.rate_limit import RateLimitMiddleware
from core.security import create_access_token
from main import app

client = TestClient(app)


class FakeRedis:
    def __init__(self):
        self.counts = {}

    def incr(self, key):
        self.counts[key] = self.counts.get(key, 0) + 1
        return self.counts[key]

    def expire(self, key, seconds):
        return True

    def ttl(self, key):
        return 42


class BrokenRedis:
    def incr(self, key):
        raise ConnectionError("redis gone")


def _limiter():
    return RateLimitMiddleware(FastAPI(), default_limit=60, window=60)


def test_health():
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_detailed_health_reports_missing_redis():
    body = client.get("/health/detailed").json()
    assert body["checks"]["database"]["status"] == "healthy"
    assert body["checks"]["redis"]["status"] == "unavailable"
    assert body["status"] == "degraded"


def test_security_headers_on_every_response():
    resp = client.get("/health")
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert resp.headers["X-Frame-Options"] == "DENY"
    assert "X-Process-Time" in resp.headers


def test_api_errors_carry_error_code(make_user, headers_for):
    missing = client.post(
        "/v1/training/sessions/00000000-0000-0000-0000-000000000000/complete",
        headers=headers_for(make_user()),
    )
    assert missing.status_code == 404
    assert missing.json() == {"detail": "Séance introuvable", "error_code": "NOT_FOUND"}


def test_endpoint_limits_match_by_prefix():
    limiter = _limiter()
    assert limiter._get_endpoint_limit("/v1/training/weekly-program") == 5
    assert limiter._get_endpoint_limit("/v1/chat/alex") == 20
    assert limiter._get_endpoint_limit("/v1/nutrition/meal") == 20
    assert limiter._get_endpoint_limit("/v1/checkins") == 60


def test_rate_limit_counts_per_caller(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(rate_limit, "get_redis_client", lambda: fake)
    limiter = _limiter()

    results = [limiter._check_rate_limit("user:1", "/v1/chat/alex", limit=2, window=60) for _ in range(3)]
    assert [allowed for allowed, _, _ in results] == [True, True, False]
    assert [remaining for _, remaining, _ in results] == [1, 0, 0]

    allowed, _, _ = limiter._check_rate_limit("user:2", "/v1/chat/alex", limit=2, window=60)
    assert allowed is True


def test_rate_limit_fails_open(monkeypatch):
    limiter = _limiter()

    monkeypatch.setattr(rate_limit, "get_redis_client", lambda: None)
    assert limiter._check_rate_limit("ip:1.2.3.4", "/v1/auth/login", limit=10, window=60)[0] is True

    monkeypatch.setattr(rate_limit, "get_redis_client", lambda: BrokenRedis())
    assert limiter._check_rate_limit("ip:1.2.3.4", "/v1/auth/login", limit=10, window=60)[0] is True


def test_caller_id_prefers_token_subject():
    limiter = _limiter()

    class _Req:
        def __init__(self, headers):
            self.headers = headers
            self.client = type("Client", (), {"host": "10.0.0.7"})()

    token = create_access_token({"sub": "abc"})
    assert limiter._get_caller_id(_Req({"Authorization": f"Bearer {token}"})) == "user:abc"
    assert limiter._get_caller_id(_Req({"Authorization": "Bearer garbage"})) == "ip:10.0.0.7"
    assert limiter._get_caller_id(_Req({})) == "ip:10.0.0.7"
