"""
API v1 Router

Organization-scoped routes find their organization through the tenant
context (path, body, then query ``organization_id``); project and task
routes derive it from the addressed entity.
"""

from fastapi import APIRouter
from . import members, organizations, projects, tasks

router = APIRouter()

router.include_router(organizations.router, prefix="/organizations", tags=["Organizations"])
router.include_router(members.router, prefix="/members", tags=["Members"])
router.include_router(projects.router, prefix="/projects", tags=["Projects"])
router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])


@router.get("/", tags=["API"])
async def api_root():
    """API root - returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/organizations",
            "/members",
            "/projects",
            "/projects/stats",
            "/tasks",
            "/tasks/search",
        ],
    }
