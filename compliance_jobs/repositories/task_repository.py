from typing import List, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from compliance_jobs.database.models import EvidenceAutomation, Organization, Task
from compliance_jobs.repositories.base_repository import BaseRepository


class TaskRepository(BaseRepository[Task]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, Task)

    async def list_review_candidates(self) -> List[Task]:
        """Done tasks with a review date and frequency, automations eagerly loaded."""
        query = (
            select(Task)
            .where(
                Task.status == "done",
                Task.review_date.is_not(None),
                Task.frequency.is_not(None),
            )
            .options(
                selectinload(Task.organization).selectinload(Organization.members),
                selectinload(Task.assignee),
                selectinload(Task.evidence_automations).selectinload(EvidenceAutomation.runs),
                selectinload(Task.integration_check_runs),
            )
        )
        result = await self.session.execute(query)
        return list(result.unique().scalars().all())

    async def bulk_update_status(self, task_ids: Sequence[str], status: str) -> int:
        if not task_ids:
            return 0
        result = await self.session.execute(
            update(Task).where(Task.id.in_(list(task_ids))).values(status=status)
        )
        await self.session.commit()
        return result.rowcount or 0
