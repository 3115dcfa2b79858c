"""
Credential handling and actor resolution.

- bcrypt password hashing
- JWT access tokens (sub, iat, exp, jti) carried as a bearer token or cookie
- `get_actor` dependency that rebuilds the Actor from the stored membership
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from taskhub.core.config import Settings
from taskhub.core.database import get_store
from taskhub.schemas.organizations import MembershipRead
from taskhub.schemas.users import Actor, MemberActor, UserRecord
from taskhub.store.base import Store

log = structlog.get_logger()

bearer_scheme = HTTPBearer(auto_error=False)

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str, rounds: int = 12) -> str:
    """Hash a password using bcrypt (cost factor 12 unless configured)."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError:
        # Oversized or malformed input can never match a stored hash.
        return False


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_access_token(
    user_id: uuid.UUID,
    settings: Settings,
    *,
    expires_delta: Optional[timedelta] = None,
) -> tuple[str, str]:
    """Create a signed JWT. Returns (token, jti)."""
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {"sub": str(user_id), "iat": now, "exp": exp, "jti": jti}
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, jti


def decode_access_token(token: str, settings: Settings) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


# ---------------------------------------------------------------------------
# Actor resolution
# ---------------------------------------------------------------------------

def build_actor(user: UserRecord, membership: Optional[MembershipRead]) -> Actor:
    if membership is None:
        return Actor(id=user.id, email=user.email, name=user.name)
    return MemberActor(
        id=user.id,
        email=user.email,
        name=user.name,
        organization_id=membership.organization_id,
        role=membership.role,
    )


def _extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials is not None and credentials.scheme.lower() == "bearer":
        return credentials.credentials
    return request.cookies.get(request.app.state.settings.session_cookie_name)


async def get_actor(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    store: Store = Depends(get_store),
) -> Optional[Actor]:
    """Resolve the caller, or None. Guards decide whether None is acceptable."""
    token = _extract_token(request, credentials)
    if not token:
        return None
    try:
        payload = decode_access_token(token, request.app.state.settings)
        user_id = uuid.UUID(payload["sub"])
    except (jwt.PyJWTError, KeyError, ValueError):
        log.info("auth.invalid_token")
        return None

    user = await store.find_user_by_id(user_id)
    if user is None:
        return None
    membership = await store.find_membership_by_user_id(user.id)
    return build_actor(user, membership)
