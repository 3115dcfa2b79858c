"""
API v1 Router

Tenant-scoped endpoints resolve the organization from the caller's
membership, never from the URL.
"""

from fastapi import APIRouter

from . import join_requests, organizations, tasks

router = APIRouter()

router.include_router(organizations.router)
router.include_router(join_requests.router, prefix="/join-requests", tags=["Join Requests"])
router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/orgs",
            "/orgs/{org_id}/join-requests",
            "/membership",
            "/members",
            "/join-requests",
            "/tasks",
        ],
    }
