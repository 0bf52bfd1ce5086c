from fastapi import APIRouter

from compliance_jobs.api.v1.endpoints import jobs

api_router = APIRouter()

api_router.include_router(jobs.router, prefix="/jobs", tags=["Jobs"])

__all__ = ["api_router"]
