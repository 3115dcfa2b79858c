"""
User registration and credential checks.
"""

from __future__ import annotations

from typing import Optional

import structlog

from taskhub.core.auth import hash_password, verify_password
from taskhub.core.errors import ConflictError, UnauthorizedError, UniqueViolation, maps_store_errors
from taskhub.core.rate_limit import RateLimiter, consume
from taskhub.schemas.users import LoginRequest, RegisterRequest, UserRead, UserRecord
from taskhub.store.base import Store

log = structlog.get_logger()

_BAD_CREDENTIALS = "Invalid email or password."


@maps_store_errors
async def register_user(
    store: Store,
    req: RegisterRequest,
    rate_limiter: Optional[RateLimiter] = None,
    *,
    bcrypt_rounds: int = 12,
) -> UserRead:
    email = req.email.lower()
    await consume(rate_limiter, "register", email)

    if await store.find_user_by_email(email) is not None:
        raise ConflictError("Email already registered.")
    try:
        user = await store.create_user(email, req.name, hash_password(req.password, bcrypt_rounds))
    except UniqueViolation as exc:
        raise ConflictError("Email already registered.") from exc

    log.info("user.registered", user_id=str(user.id), email=email)
    return UserRead.model_validate(user)


@maps_store_errors
async def authenticate(
    store: Store,
    req: LoginRequest,
    rate_limiter: Optional[RateLimiter] = None,
) -> UserRecord:
    email = req.email.lower()
    await consume(rate_limiter, "login", email)

    user = await store.find_user_by_email(email)
    if user is None or not verify_password(req.password, user.password_hash):
        log.warning("auth.login_failure", email=email)
        raise UnauthorizedError(_BAD_CREDENTIALS)

    log.info("auth.login_success", user_id=str(user.id))
    return user
