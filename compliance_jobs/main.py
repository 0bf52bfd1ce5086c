"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from compliance_jobs.api.v1.endpoints import health
from compliance_jobs.api.v1.router import api_router
from compliance_jobs.core.config import settings
from compliance_jobs.core.database import close_database, init_database
from compliance_jobs.core.temporal_client import close_temporal_client
from compliance_jobs.utils.logging import get_logger

LOGGER = get_logger(__name__, level=settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the database on startup; release database and Temporal client on shutdown."""
    LOGGER.info(
        "Starting application",
        extra={
            "app_name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
        },
    )

    try:
        await init_database()
    except Exception as e:
        # The health endpoint reports the database as degraded
        LOGGER.error("Failed to initialize database", exc_info=True, extra={"error": str(e)})

    yield

    LOGGER.info("Shutting down application")
    await close_temporal_client()
    try:
        await close_database()
    except Exception as e:
        LOGGER.error("Error closing database", exc_info=True, extra={"error": str(e)})


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Background job orchestration for compliance automation",
    lifespan=lifespan,
)

app.include_router(health.router, prefix="/health", tags=["Health"])
app.include_router(api_router, prefix=settings.api_v1_prefix)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "compliance_jobs.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
