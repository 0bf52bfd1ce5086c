"""Deletion of embeddings from the pgvector index."""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from compliance_jobs.core.config import settings
from compliance_jobs.repositories.vector_embedding_repository import VectorEmbeddingRepository
from compliance_jobs.services.batching import chunked
from compliance_jobs.utils.logging import get_logger

LOGGER = get_logger(__name__)

KNOWLEDGE_BASE_DOCUMENT_SOURCE = "knowledge_base_document"


def manual_answer_embedding_id(manual_answer_id: str) -> str:
    return f"manual_answer_{manual_answer_id}"


class VectorStoreService:
    """Chunked, verified deletes over ``VectorEmbeddingRepository``."""

    def __init__(
        self,
        repository: VectorEmbeddingRepository,
        chunk_size: Optional[int] = None,
        verify_retries: Optional[int] = None,
        verify_delay_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.repository = repository
        self.chunk_size = chunk_size or settings.jobs.vector_delete_chunk_size
        self.verify_retries = settings.jobs.vector_verify_retries if verify_retries is None else verify_retries
        self.verify_delay_seconds = (
            settings.jobs.vector_verify_delay_seconds if verify_delay_seconds is None else verify_delay_seconds
        )
        self._sleep = sleep

    async def _delete_chunks(self, ids: List[str], source_id: str) -> int:
        deleted = 0
        for chunk in chunked(ids, self.chunk_size):
            try:
                deleted += await self.repository.delete_ids(chunk)
            except SQLAlchemyError as e:
                await self.repository.session.rollback()
                LOGGER.error(
                    "Error deleting chunk of embeddings",
                    extra={"source_id": source_id, "chunk_size": len(chunk), "error": str(e)},
                )
        return deleted

    async def delete_source(self, source_id: str, source_type: str, organization_id: str) -> Dict[str, Any]:
        """Delete every embedding of one source, then verify.

        A failing chunk does not stop the remaining chunks. Leftover ids are
        re-queried and deleted again up to ``verify_retries`` times with a
        delay that grows with each attempt.

        Returns:
            dict with ``deleted_count`` and the ``remaining`` ids
        """
        ids = await self.repository.find_for_source(source_id, source_type, organization_id)
        if not ids:
            LOGGER.info("No embeddings found for source", extra={"source_id": source_id})
            return {"deleted_count": 0, "remaining": []}

        deleted_count = await self._delete_chunks(ids, source_id)
        remaining = await self.repository.find_for_source(source_id, source_type, organization_id)

        attempt = 0
        while remaining and attempt < self.verify_retries:
            attempt += 1
            LOGGER.warning(
                "Some embeddings were not deleted, retrying",
                extra={"source_id": source_id, "remaining": len(remaining), "attempt": attempt},
            )
            await self._sleep(self.verify_delay_seconds * attempt)
            deleted_count += await self._delete_chunks(remaining, source_id)
            remaining = await self.repository.find_for_source(source_id, source_type, organization_id)

        if remaining:
            LOGGER.error(
                "Embeddings remain after verification retries",
                extra={"source_id": source_id, "remaining_ids": remaining},
            )
        return {"deleted_count": deleted_count, "remaining": remaining}

    async def delete_embedding(self, embedding_id: str, organization_id: Optional[str] = None) -> bool:
        """Delete one embedding by id; False when it did not exist."""
        existing = await self.repository.get_by_ids([embedding_id], organization_id=organization_id)
        if not existing:
            return False
        return await self.repository.delete_ids([embedding_id]) > 0
