"""User and actor schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, StringConstraints

from .common import Role

UserName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=120)]

BCRYPT_MAX_BYTES = 72


def _fits_bcrypt(password: str) -> str:
    # bcrypt rejects inputs longer than 72 bytes, not characters.
    if len(password.encode()) > BCRYPT_MAX_BYTES:
        raise ValueError(f"Password must be at most {BCRYPT_MAX_BYTES} bytes when UTF-8 encoded.")
    return password


Password = Annotated[
    str, StringConstraints(min_length=8, max_length=72), AfterValidator(_fits_bcrypt)
]
LoginPassword = Annotated[str, StringConstraints(min_length=1, max_length=1024)]


class UserRecord(BaseModel):
    """Stored user, including the credential hash. Never returned to clients."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: uuid.UUID
    email: str
    name: str
    password_hash: str
    created_at: datetime


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    name: str
    created_at: datetime


class Actor(BaseModel):
    """The authenticated caller. organization_id and role are None before membership."""

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    email: str
    name: str
    organization_id: Optional[uuid.UUID] = None
    role: Optional[Role] = None


class MemberActor(Actor):
    """An actor proven to hold a membership."""

    organization_id: uuid.UUID
    role: Role


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class RegisterRequest(BaseModel):
    email: EmailStr
    name: UserName
    password: Password


class LoginRequest(BaseModel):
    email: EmailStr
    password: LoginPassword


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
