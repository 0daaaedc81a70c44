# aim/core/security.py
from __future__ import annotations

"""
AIM — Identity dependency
=========================
The auth provider is opaque to this service: it issues bearer tokens whose
claims carry the user id (`sub`), subscription tier (`tier`) and role
(`role`). This module only verifies and reads them.

- `get_current_identity` → `Identity` or 401
- `require_uploader`     → 403 unless role is artist/manager/admin
- `create_access_token`  → helper for local tooling and tests
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
import logging

from fastapi import Depends, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from aim.core.config import settings
from aim.core.exceptions import AppException
from aim.schemas.media import SubscriptionTier

logger = logging.getLogger("aim.security")

bearer = HTTPBearer(auto_error=False)

UPLOADER_ROLES = frozenset({"artist", "manager", "admin"})


@dataclass(frozen=True)
class Identity:
    user_id: str
    tier: str = SubscriptionTier.FREE.value
    role: str = "listener"

    @property
    def can_upload(self) -> bool:
        return self.role in UPLOADER_ROLES


def _unauthorized(detail: str = "Invalid or expired token") -> AppException:
    return AppException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        message=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_access_token(
    user_id: str,
    *,
    tier: str = SubscriptionTier.FREE.value,
    role: str = "listener",
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": str(user_id),
        "tier": tier,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_in).timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY.get_secret_value(), algorithm=settings.JWT_ALGORITHM)


def decode_identity(token: str) -> Identity:
    try:
        claims = jwt.decode(
            token,
            settings.JWT_SECRET_KEY.get_secret_value(),
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError as e:
        logger.info("rejected bearer token: %s", e)
        raise _unauthorized() from e

    sub = claims.get("sub")
    if not sub:
        raise _unauthorized("Token has no subject")
    tier = str(claims.get("tier") or SubscriptionTier.FREE.value).lower()
    role = str(claims.get("role") or "listener").lower()
    return Identity(user_id=str(sub), tier=tier, role=role)


async def get_current_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> Identity:
    if credentials is None or (credentials.scheme or "").lower() != "bearer":
        raise _unauthorized("Not authenticated")
    identity = decode_identity(credentials.credentials)
    request.state.user_id = identity.user_id
    return identity


async def require_uploader(identity: Identity = Depends(get_current_identity)) -> Identity:
    if not identity.can_upload:
        raise AppException(
            status_code=status.HTTP_403_FORBIDDEN,
            message=f"Role '{identity.role}' may not manage music files",
        )
    return identity
