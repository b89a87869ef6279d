from fastapi import APIRouter

from app.api.v1.endpoints import extraction, health, jobs, webhooks

api_router = APIRouter()

api_router.include_router(extraction.router, prefix="", tags=["extraction"])
api_router.include_router(jobs.router, prefix="", tags=["jobs"])
api_router.include_router(webhooks.router, prefix="", tags=["webhooks"])
api_router.include_router(health.router, prefix="", tags=["health"])
