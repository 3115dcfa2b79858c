"""User model."""

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class User(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    email: str = Field(nullable=False, unique=True, index=True)
    name: str = Field(nullable=False)
    password_hash: str = Field(nullable=False)  # bcrypt
