# tests/test_core/test_http_plumbing.py

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from starlette.requests import Request

from aim.core import limiter as limiter_mod
from aim.core.exception_handlers import install_exception_handlers
from aim.core.exceptions import DeleteFailed, InvalidMediaRequest, StorageUnavailable, UploadFailed
from aim.middleware.request_id import RequestIDMiddleware
from aim.repositories.media_assets import InMemoryMediaAssetRepository
from aim.schemas.media import MediaAsset


def _request(headers=None, client=("10.0.0.7", 1234)) -> Request:
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw, "client": client, "state": {}})


def _app_raising(exc: Exception) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RequestIDMiddleware)
    install_exception_handlers(app)

    @app.get("/boom")
    async def boom():
        raise exc

    return app


@pytest.mark.anyio
@pytest.mark.parametrize(
    "exc,status,title",
    [
        (StorageUnavailable(), 503, "Storage Unavailable"),
        (UploadFailed(192, cause=RuntimeError("secret-bucket-name")), 502, "Upload Failed"),
        (DeleteFailed(128), 502, "Delete Failed"),
        (InvalidMediaRequest("Invalid asset id"), 400, "Invalid Media Request"),
    ],
)
async def test_storage_errors_map_to_problem_json(exc, status, title):
    transport = ASGITransport(app=_app_raising(exc))
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        r = await client.get("/boom")
    assert r.status_code == status
    assert r.headers["content-type"].startswith("application/problem+json")
    body = r.json()
    assert body["title"] == title
    assert body["status"] == status
    assert "secret-bucket-name" not in r.text
    assert r.headers.get("X-Request-ID")


def test_rate_limit_key_prefers_user():
    req = _request()
    assert limiter_mod.get_rate_limit_key(req) == "ip:10.0.0.7"
    req.state.user_id = "u1"
    assert limiter_mod.get_rate_limit_key(req) == "user:u1"


def test_rate_limit_key_uses_forwarded_for():
    req = _request({"X-Forwarded-For": "203.0.113.9, 10.0.0.1"})
    assert limiter_mod.get_rate_limit_key(req) == "ip:203.0.113.9"


def test_limits_toggle_at_runtime(monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_TEST_BYPASS", "0")
    monkeypatch.setenv("RATE_LIMIT_ENABLED", "true")
    assert limiter_mod.limits_disabled() is False
    monkeypatch.setenv("RATE_LIMIT_ENABLED", "false")
    assert limiter_mod.limits_disabled() is True


@pytest.mark.anyio
async def test_registry_get_set_delete():
    repo = InMemoryMediaAssetRepository()
    asset = MediaAsset(
        asset_id="abc",
        extension="wav",
        content_type="audio/wav",
        original_filename="a.wav",
        variants={"128": "u"},
    )
    await repo.set(asset)
    assert len(repo) == 1
    assert (await repo.get("abc")).variants == {128: "u"}
    assert (await repo.delete("abc")) == asset
    assert await repo.delete("abc") is None
    assert await repo.get("abc") is None


# ─────────────────────────────────────────────────────────────
# Rate limiting through the real app
# ─────────────────────────────────────────────────────────────

@pytest.fixture()
def fresh_limits():
    limiter_mod.limiter.reset()
    yield
    limiter_mod.limiter.reset()


async def _hit_stats(app, headers, times):
    codes = []
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        for _ in range(times):
            codes.append((await client.get("/api/v1/music/storage/stats", headers=headers)).status_code)
    return codes


@pytest.mark.anyio
async def test_route_limit_returns_429_past_quota(monkeypatch, fresh_limits, app, auth_headers):
    monkeypatch.setenv("RATE_LIMIT_ENABLED", "true")
    monkeypatch.delenv("RATE_LIMIT_TEST_BYPASS", raising=False)

    codes = await _hit_stats(app, auth_headers("quota-user", role="artist"), 11)

    assert codes[:10] == [200] * 10
    assert codes[10] == 429


@pytest.mark.anyio
async def test_disabled_limits_exempt_routes(monkeypatch, fresh_limits, app, auth_headers):
    monkeypatch.setenv("RATE_LIMIT_ENABLED", "false")
    monkeypatch.delenv("RATE_LIMIT_TEST_BYPASS", raising=False)

    codes = await _hit_stats(app, auth_headers("unlimited-user", role="artist"), 12)

    assert codes == [200] * 12
