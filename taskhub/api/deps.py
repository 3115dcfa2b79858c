"""Shared FastAPI dependencies."""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Query, Request

from taskhub.core.auth import get_actor  # noqa: F401
from taskhub.core.config import Settings
from taskhub.core.database import get_store  # noqa: F401
from taskhub.core.errors import ValidationError
from taskhub.core.rate_limit import RateLimiter
from taskhub.schemas.common import ListParams, SortOrder


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_rate_limiter(request: Request) -> Optional[RateLimiter]:
    return request.app.state.rate_limiter


def list_params(
    offset: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=1),
    sort_by: str = Query("created_at"),
    sort_order: SortOrder = Query(SortOrder.DESC),
    settings: Settings = Depends(get_app_settings),
) -> ListParams:
    """Pagination query parameters; page sizes come from settings."""
    if limit is None:
        limit = settings.default_page_size
    elif limit > settings.max_page_size:
        raise ValidationError(f"limit must be at most {settings.max_page_size}.")
    return ListParams(offset=offset, limit=limit, sort_by=sort_by, sort_order=sort_order)
