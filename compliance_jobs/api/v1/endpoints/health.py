"""Health check API endpoints."""

from fastapi import APIRouter

from compliance_jobs.core.config import settings
from compliance_jobs.core.database import db_client
from compliance_jobs.schemas.jobs import HealthCheckResponse

router = APIRouter()


@router.get(
    "",
    response_model=HealthCheckResponse,
    summary="Health check endpoint",
    description="Check if the service is running and the database is reachable",
    operation_id="get_service_health_status",
)
async def health_check() -> HealthCheckResponse:
    db_health = await db_client.health_check()

    return HealthCheckResponse(
        status="healthy" if db_health["status"] == "healthy" else "degraded",
        version=settings.app_version,
        service=settings.app_name,
    )
