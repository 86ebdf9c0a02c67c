"""API routers for the DeliverHub backend."""
from fastapi import APIRouter

from . import client, files, health, milestones, projects


def get_api_router() -> APIRouter:
    """Return the root API router."""

    api_router = APIRouter()
    api_router.include_router(health.router)
    api_router.include_router(projects.router)
    api_router.include_router(milestones.router)
    api_router.include_router(client.router)
    api_router.include_router(files.router)
    return api_router
