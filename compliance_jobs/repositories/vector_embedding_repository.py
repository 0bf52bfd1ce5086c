from typing import List, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_jobs.database.models import VectorEmbedding
from compliance_jobs.repositories.base_repository import BaseRepository


class VectorEmbeddingRepository(BaseRepository[VectorEmbedding]):
    """pgvector-backed index rows, addressed by embedding id."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, VectorEmbedding)

    async def find_for_source(self, source_id: str, source_type: str, organization_id: str) -> List[str]:
        """Ids of every embedding chunk that belongs to one source record."""
        query = select(VectorEmbedding.id).where(
            VectorEmbedding.source_id == source_id,
            VectorEmbedding.source_type == source_type,
            VectorEmbedding.organization_id == organization_id,
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_by_ids(self, ids: Sequence[str], organization_id: Optional[str] = None) -> List[str]:
        """Return the subset of ``ids`` that still exist, optionally within one tenant."""
        if not ids:
            return []
        query = select(VectorEmbedding.id).where(VectorEmbedding.id.in_(list(ids)))
        if organization_id is not None:
            query = query.where(VectorEmbedding.organization_id == organization_id)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def delete_ids(self, ids: Sequence[str]) -> int:
        if not ids:
            return 0
        result = await self.session.execute(delete(VectorEmbedding).where(VectorEmbedding.id.in_(list(ids))))
        await self.session.commit()
        return result.rowcount or 0
