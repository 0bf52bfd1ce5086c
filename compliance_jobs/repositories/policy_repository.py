from typing import List, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from compliance_jobs.database.models import Organization, Policy
from compliance_jobs.repositories.base_repository import BaseRepository


class PolicyRepository(BaseRepository[Policy]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, Policy)

    async def list_review_candidates(self) -> List[Policy]:
        """Published policies that have both a review date and a frequency.

        Organization members and the assignee are loaded so recipients can be
        built without further queries.
        """
        query = (
            select(Policy)
            .where(
                Policy.status == "published",
                Policy.review_date.is_not(None),
                Policy.frequency.is_not(None),
            )
            .options(
                selectinload(Policy.organization).selectinload(Organization.members),
                selectinload(Policy.assignee),
            )
        )
        result = await self.session.execute(query)
        return list(result.unique().scalars().all())

    async def bulk_mark_needs_review(self, policy_ids: Sequence[str]) -> int:
        """Move policies to ``needs_review`` in one UPDATE; returns the row count."""
        if not policy_ids:
            return 0
        result = await self.session.execute(
            update(Policy).where(Policy.id.in_(list(policy_ids))).values(status="needs_review")
        )
        await self.session.commit()
        return result.rowcount or 0

