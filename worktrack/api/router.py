"""Top-level API router."""

from fastapi import APIRouter

from worktrack.api.routes.admin import router as admin_router
from worktrack.api.routes.auth import router as auth_router
from worktrack.api.routes.finances import admin_router as admin_finances_router
from worktrack.api.routes.finances import router as finances_router
from worktrack.api.routes.health import router as health_router
from worktrack.api.routes.projects import router as projects_router
from worktrack.api.routes.summary import router as summary_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router)
api_router.include_router(projects_router)
api_router.include_router(finances_router)
api_router.include_router(summary_router)
api_router.include_router(admin_router)
api_router.include_router(admin_finances_router)
