from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from compliance_jobs.repositories.vector_embedding_repository import VectorEmbeddingRepository
from compliance_jobs.services.vector_store import (
    KNOWLEDGE_BASE_DOCUMENT_SOURCE,
    VectorStoreService,
    manual_answer_embedding_id,
)


@pytest.fixture
def repository():
    repo = AsyncMock(spec=VectorEmbeddingRepository)
    repo.session = AsyncMock()
    return repo


@pytest.fixture
def sleep():
    return AsyncMock()


def _service(repository, sleep, **kwargs):
    return VectorStoreService(repository, chunk_size=2, verify_retries=3, verify_delay_seconds=0.5, sleep=sleep, **kwargs)


def test_manual_answer_embedding_id():
    assert manual_answer_embedding_id("ma_1") == "manual_answer_ma_1"


@pytest.mark.asyncio
async def test_delete_source_deletes_in_chunks(repository, sleep):
    repository.find_for_source.side_effect = [["e1", "e2", "e3"], []]
    repository.delete_ids.side_effect = lambda ids: len(ids)

    outcome = await _service(repository, sleep).delete_source("doc_1", KNOWLEDGE_BASE_DOCUMENT_SOURCE, "org_1")

    assert outcome == {"deleted_count": 3, "remaining": []}
    assert [c.args[0] for c in repository.delete_ids.call_args_list] == [["e1", "e2"], ["e3"]]
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_failing_chunk_does_not_stop_others_and_is_retried(repository, sleep):
    repository.find_for_source.side_effect = [["e1", "e2", "e3"], ["e1", "e2"], []]
    repository.delete_ids.side_effect = [OperationalError("DELETE", {}, Exception("lock")), 1, 2]

    outcome = await _service(repository, sleep).delete_source("doc_1", KNOWLEDGE_BASE_DOCUMENT_SOURCE, "org_1")

    assert outcome == {"deleted_count": 3, "remaining": []}
    repository.session.rollback.assert_awaited_once()
    sleep.assert_awaited_once_with(0.5)


@pytest.mark.asyncio
async def test_verification_gives_up_after_retries(repository, sleep):
    repository.find_for_source.return_value = ["stuck"]
    repository.delete_ids.return_value = 0

    outcome = await _service(repository, sleep).delete_source("doc_1", KNOWLEDGE_BASE_DOCUMENT_SOURCE, "org_1")

    assert outcome["remaining"] == ["stuck"]
    assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0, 1.5]


@pytest.mark.asyncio
async def test_delete_source_without_embeddings(repository, sleep):
    repository.find_for_source.return_value = []

    outcome = await _service(repository, sleep).delete_source("doc_1", KNOWLEDGE_BASE_DOCUMENT_SOURCE, "org_1")

    assert outcome == {"deleted_count": 0, "remaining": []}
    repository.delete_ids.assert_not_awaited()


@pytest.mark.asyncio
async def test_delete_embedding_is_false_when_already_gone(repository, sleep):
    repository.get_by_ids.return_value = []

    assert await _service(repository, sleep).delete_embedding("manual_answer_ma_1", "org_1") is False
    repository.delete_ids.assert_not_awaited()
    repository.get_by_ids.assert_awaited_once_with(["manual_answer_ma_1"], organization_id="org_1")
