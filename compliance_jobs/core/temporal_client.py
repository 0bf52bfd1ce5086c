"""Temporal client connection management.

The API uses this to start on-demand workflows and query their progress; the
schedule bootstrapper uses it to register cron schedules.
"""

from typing import Optional

from temporalio.client import Client as TemporalClient

from compliance_jobs.core.config import settings
from compliance_jobs.utils.logging import get_logger

LOGGER = get_logger(__name__)


class TemporalClientManager:
    """Lazily creates a Temporal client and keeps it around for reuse."""

    def __init__(self) -> None:
        self._client: Optional[TemporalClient] = None

    async def get_client(self) -> TemporalClient:
        if self._client is None:
            LOGGER.info(
                "Connecting to Temporal",
                extra={"target": settings.temporal.target, "namespace": settings.temporal.namespace},
            )
            self._client = await TemporalClient.connect(
                settings.temporal.target,
                namespace=settings.temporal.namespace,
            )
        return self._client

    async def close(self) -> None:
        # Client has no explicit close; dropping the reference releases the
        # underlying service connection.
        self._client = None


_temporal_manager = TemporalClientManager()


async def get_temporal_client() -> TemporalClient:
    """Get the shared Temporal client instance."""
    return await _temporal_manager.get_client()


async def close_temporal_client() -> None:
    await _temporal_manager.close()
