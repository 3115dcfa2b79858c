"""
Database connection and session management.

The engine is owned by a Database instance built at process start and
handed to the store; nothing is created at import time.
"""

from __future__ import annotations

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

import taskhub.models  # noqa: F401  (populates SQLModel.metadata)
from taskhub.store.base import Store


class Database:
    """Async engine plus the session factory bound to it."""

    def __init__(self, url: str, *, echo: bool = False):
        self.engine: AsyncEngine = create_async_engine(url, echo=echo, future=True)
        self.session_factory = sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def init_db(self) -> None:
        """Create all tables (development and tests only)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


def get_store(request: Request) -> Store:
    """FastAPI dependency returning the store wired at startup."""
    return request.app.state.store
