"""
Authentication endpoints.

- Email/password registration & login
- JWT access token returned in the body and as an httponly session cookie
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Response

from taskhub.api.deps import get_actor, get_app_settings, get_rate_limiter, get_store
from taskhub.core.auth import create_access_token
from taskhub.core.config import Settings
from taskhub.core.policies import require_authenticated
from taskhub.core.rate_limit import RateLimiter
from taskhub.schemas.users import Actor, LoginRequest, RegisterRequest, TokenResponse, UserRead
from taskhub.services.users import authenticate, register_user
from taskhub.store.base import Store

router = APIRouter()


@router.post("/register", response_model=UserRead, status_code=201)
async def register(
    body: RegisterRequest,
    store: Store = Depends(get_store),
    rate_limiter: Optional[RateLimiter] = Depends(get_rate_limiter),
    settings: Settings = Depends(get_app_settings),
):
    """Register a new user with email/password."""
    return await register_user(store, body, rate_limiter, bcrypt_rounds=settings.bcrypt_rounds)


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    response: Response,
    store: Store = Depends(get_store),
    rate_limiter: Optional[RateLimiter] = Depends(get_rate_limiter),
    settings: Settings = Depends(get_app_settings),
):
    """Authenticate with email/password and receive an access token."""
    user = await authenticate(store, body, rate_limiter)
    token, _jti = create_access_token(user.id, settings)
    max_age = settings.jwt_expire_minutes * 60
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=not settings.debug,
        samesite="lax",
        path="/",
        max_age=max_age,
    )
    return TokenResponse(access_token=token, expires_in=max_age)


@router.get("/me", response_model=Actor)
async def me(actor: Optional[Actor] = Depends(get_actor)):
    """The current user with their organization and role, if any."""
    return require_authenticated(actor)
