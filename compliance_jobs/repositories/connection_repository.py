from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_jobs.database.models import IntegrationConnection, IntegrationProvider
from compliance_jobs.repositories.base_repository import BaseRepository


class ConnectionRepository(BaseRepository[IntegrationConnection]):
    """Repository for integration connections."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, IntegrationConnection)

    async def get_active(
        self, connection_id: str, organization_id: Optional[str] = None
    ) -> Optional[IntegrationConnection]:
        """Re-read a connection and return it only while it is still active.

        Worker tasks call this right before doing work so that a connection
        deleted or disconnected since the orchestrator listed it is skipped.
        """
        query = select(IntegrationConnection).where(
            IntegrationConnection.id == connection_id,
            IntegrationConnection.status == "active",
        )
        if organization_id is not None:
            query = query.where(IntegrationConnection.organization_id == organization_id)
        result = await self.session.execute(query)
        return result.unique().scalar_one_or_none()

    async def list_active_with_providers(self) -> List[IntegrationConnection]:
        """All active connections across tenants, provider eagerly joined."""
        query = (
            select(IntegrationConnection)
            .where(IntegrationConnection.status == "active")
            .order_by(IntegrationConnection.created_at)
        )
        result = await self.session.execute(query)
        return list(result.unique().scalars().all())

    async def find_active_for_provider(
        self, organization_id: str, provider_slug: str
    ) -> Optional[IntegrationConnection]:
        query = (
            select(IntegrationConnection)
            .join(IntegrationProvider, IntegrationConnection.provider_id == IntegrationProvider.id)
            .where(
                IntegrationConnection.organization_id == organization_id,
                IntegrationConnection.status == "active",
                IntegrationProvider.slug == provider_slug,
            )
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.unique().scalars().first()

    async def mark_synced(self, connection_id: str) -> None:
        await self.session.execute(
            update(IntegrationConnection)
            .where(IntegrationConnection.id == connection_id)
            .values(last_sync_at=datetime.now(timezone.utc))
        )
        await self.session.commit()

    async def mark_error(self, connection_id: str, message: str) -> None:
        """Flag a connection whose credentials were rejected by the provider."""
        await self.session.execute(
            update(IntegrationConnection)
            .where(IntegrationConnection.id == connection_id)
            .values(status="error", error_message=message)
        )
        await self.session.commit()
        self.logger.warning(
            "Connection marked as error",
            extra={"connection_id": connection_id, "error": message},
        )
