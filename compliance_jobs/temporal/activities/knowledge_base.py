"""Vector store cleanup activities for manual answers and knowledge base documents."""

from typing import Any, Dict, List

from temporalio import activity

from compliance_jobs.core.database import async_session_maker
from compliance_jobs.repositories.manual_answer_repository import ManualAnswerRepository
from compliance_jobs.repositories.vector_embedding_repository import VectorEmbeddingRepository
from compliance_jobs.services.batching import TaskResult
from compliance_jobs.services.vector_store import (
    KNOWLEDGE_BASE_DOCUMENT_SOURCE,
    VectorStoreService,
    manual_answer_embedding_id,
)
from compliance_jobs.temporal.core.activity_registry import ActivityRegistry
from compliance_jobs.utils.logging import get_logger

LOGGER = get_logger(__name__)

MANUAL_ANSWER_NOT_FOUND = "Manual answer not found"


@ActivityRegistry.register("knowledge_base", "list_manual_answer_ids")
@activity.defn
async def list_manual_answer_ids(organization_id: str) -> List[str]:
    async with async_session_maker() as session:
        return await ManualAnswerRepository(session).list_ids_for_organization(organization_id)


@ActivityRegistry.register("knowledge_base", "delete_manual_answer")
@activity.defn
async def delete_manual_answer(manual_answer_id: str, organization_id: str) -> Dict[str, Any]:
    """Remove a manual answer from the vector index and the database.

    Idempotent: when neither the embedding nor the row exists any more the
    result is a failure with ``Manual answer not found``, never an exception.
    """
    async with async_session_maker() as session:
        vector_store = VectorStoreService(VectorEmbeddingRepository(session))
        embedding_deleted = await vector_store.delete_embedding(
            manual_answer_embedding_id(manual_answer_id), organization_id
        )
        row_deleted = await ManualAnswerRepository(session).delete_for_organization(
            manual_answer_id, organization_id
        )

    if not embedding_deleted and not row_deleted:
        LOGGER.info(f"Manual answer {manual_answer_id} already deleted")
        return TaskResult.failure(manual_answer_id, MANUAL_ANSWER_NOT_FOUND).to_dict()

    return TaskResult.ok(
        manual_answer_id,
        embedding_deleted=embedding_deleted,
        row_deleted=row_deleted,
    ).to_dict()


@ActivityRegistry.register("knowledge_base", "delete_knowledge_base_document_vectors")
@activity.defn
async def delete_knowledge_base_document_vectors(document_id: str, organization_id: str) -> Dict[str, Any]:
    """Delete every embedding chunk of a knowledge base document."""
    LOGGER.info(
        "Deleting knowledge base document from vector store",
        extra={"document_id": document_id, "organization_id": organization_id},
    )
    async with async_session_maker() as session:
        outcome = await VectorStoreService(VectorEmbeddingRepository(session)).delete_source(
            document_id, KNOWLEDGE_BASE_DOCUMENT_SOURCE, organization_id
        )

    remaining = outcome["remaining"]
    if remaining:
        return TaskResult.failure(
            document_id,
            f"{len(remaining)} embeddings could not be deleted",
            deleted_count=outcome["deleted_count"],
            remaining_count=len(remaining),
        ).to_dict()

    return TaskResult.ok(document_id, deleted_count=outcome["deleted_count"], remaining_count=0).to_dict()
