# tests/conftest.py
"""
Global test bootstrap
- Makes SlowAPI rate-limiting test-friendly (bypass by default)
- Builds a fully configured storage service over fake boto clients
- Exposes the app + httpx client and bearer-token helpers
"""

from __future__ import annotations

import os

# ──────────────────────────────────────────────────────────────────────────────
# 🌱 Test env (set BEFORE importing aim so import-time readers see it)
# ──────────────────────────────────────────────────────────────────────────────
os.environ.setdefault("RATELIMIT_STORAGE_URI", "memory://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")
os.environ.setdefault("RATE_LIMIT_TEST_BYPASS", "1")
os.environ.setdefault("LOG_TO_FILE", "0")

import pytest
from httpx import ASGITransport, AsyncClient

from aim.core.config import Settings
from aim.core.security import create_access_token
from aim.main import create_app
from aim.repositories.media_assets import InMemoryMediaAssetRepository
from aim.services.music_storage import MusicStorageService
from aim.utils.aws import CloudFrontClient, S3Client
from tests.fixtures.mocks.aws import FakeBotoCloudFront, FakeBotoS3
from tests.fixtures.settings import make_settings


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture()
def cfg() -> Settings:
    return make_settings()


@pytest.fixture()
def fake_s3() -> FakeBotoS3:
    return FakeBotoS3()


@pytest.fixture()
def fake_cf() -> FakeBotoCloudFront:
    return FakeBotoCloudFront()


@pytest.fixture()
def service(cfg, fake_s3, fake_cf) -> MusicStorageService:
    return MusicStorageService(
        cfg,
        s3=S3Client(cfg, client=fake_s3),
        cdn=CloudFrontClient(cfg, client=fake_cf),
    )


@pytest.fixture()
def registry() -> InMemoryMediaAssetRepository:
    return InMemoryMediaAssetRepository()


@pytest.fixture()
def app(service, registry):
    return create_app(service=service, registry=registry)


@pytest.fixture()
async def async_client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture()
def auth_headers():
    """`auth_headers(role="artist", tier="vip")` → Authorization header dict."""

    def _make(user_id: str = "user-1", *, tier: str = "free", role: str = "listener"):
        token = create_access_token(user_id, tier=tier, role=role)
        return {"Authorization": f"Bearer {token}"}

    return _make
