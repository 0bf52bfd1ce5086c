from typing import List

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_jobs.database.models import ManualAnswer
from compliance_jobs.repositories.base_repository import BaseRepository


class ManualAnswerRepository(BaseRepository[ManualAnswer]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, ManualAnswer)

    async def list_ids_for_organization(self, organization_id: str) -> List[str]:
        query = (
            select(ManualAnswer.id)
            .where(ManualAnswer.organization_id == organization_id)
            .order_by(ManualAnswer.created_at)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def delete_for_organization(self, manual_answer_id: str, organization_id: str) -> bool:
        """Delete one manual answer scoped to its tenant.

        Returns:
            True if a row was removed, False if it was already gone
        """
        result = await self.session.execute(
            delete(ManualAnswer).where(
                ManualAnswer.id == manual_answer_id,
                ManualAnswer.organization_id == organization_id,
            )
        )
        await self.session.commit()
        return (result.rowcount or 0) > 0
