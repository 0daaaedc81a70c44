# tests/test_core/test_security.py

from datetime import timedelta

import pytest
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt
from starlette.requests import Request

from aim.core.config import settings
from aim.core.exceptions import AppException
from aim.core.security import (
    Identity,
    create_access_token,
    decode_identity,
    get_current_identity,
    require_uploader,
)


def _request() -> Request:
    return Request({"type": "http", "method": "GET", "path": "/", "headers": [], "state": {}})


def test_token_claims_round_into_identity():
    ident = decode_identity(create_access_token("u1", tier="VIP", role="Artist"))
    assert ident == Identity(user_id="u1", tier="vip", role="artist")
    assert ident.can_upload


def test_missing_tier_defaults_to_free():
    token = jwt.encode({"sub": "u2"}, settings.JWT_SECRET_KEY.get_secret_value(), algorithm=settings.JWT_ALGORITHM)
    ident = decode_identity(token)
    assert ident.tier == "free"
    assert ident.role == "listener"


@pytest.mark.parametrize(
    "token",
    [
        "not-a-jwt",
        jwt.encode({"sub": "u1"}, "some-other-secret", algorithm="HS256"),
        create_access_token("u1", expires_in=timedelta(seconds=-5)),
    ],
)
def test_bad_tokens_are_401(token):
    with pytest.raises(AppException) as ei:
        decode_identity(token)
    assert ei.value.status_code == 401
    assert ei.value.headers == {"WWW-Authenticate": "Bearer"}


@pytest.mark.anyio
async def test_missing_credentials_are_401():
    with pytest.raises(AppException) as ei:
        await get_current_identity(_request(), None)
    assert ei.value.status_code == 401


@pytest.mark.anyio
async def test_identity_sets_rate_limit_key():
    req = _request()
    creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials=create_access_token("u9"))
    ident = await get_current_identity(req, creds)
    assert ident.user_id == "u9"
    assert req.state.user_id == "u9"


@pytest.mark.anyio
@pytest.mark.parametrize("role", ["artist", "manager", "admin"])
async def test_uploader_roles_allowed(role):
    assert (await require_uploader(Identity("u", role=role))).role == role


@pytest.mark.anyio
async def test_listener_cannot_upload():
    with pytest.raises(AppException) as ei:
        await require_uploader(Identity("u"))
    assert ei.value.status_code == 403
