from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_jobs.database.models import Organization
from compliance_jobs.repositories.base_repository import BaseRepository


class OrganizationRepository(BaseRepository[Organization]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, Organization)

    async def list_with_sync_provider(self) -> List[Organization]:
        """Organizations that selected an employee sync provider."""
        query = select(Organization).where(Organization.employee_sync_provider.is_not(None))
        result = await self.session.execute(query)
        return list(result.scalars().all())
