"""Trigger on-demand jobs and poll their progress."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from compliance_jobs.core.exceptions import JobError, JobNotFoundError, ValidationError
from compliance_jobs.schemas.jobs import (
    DeleteDocumentVectorsRequest,
    DeleteManualAnswersRequest,
    JobProgressResponse,
    JobStartedResponse,
    RunConnectionChecksRequest,
)
from compliance_jobs.services.job_service import JobService
from compliance_jobs.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


def get_job_service() -> JobService:
    return JobService()


def _to_http_error(error: JobError) -> HTTPException:
    if isinstance(error, JobNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error.message)
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error.message)


@router.post(
    "/manual-answers/delete-all",
    response_model=JobStartedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Delete all manual answers of an organization",
    operation_id="start_manual_answer_deletion",
)
async def delete_all_manual_answers(
    payload: DeleteManualAnswersRequest,
    job_service: Annotated[JobService, Depends(get_job_service)],
) -> JobStartedResponse:
    try:
        started = await job_service.start_manual_answer_deletion(
            payload.organization_id, payload.manual_answer_ids
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.message)
    except JobError as e:
        raise _to_http_error(e)
    return JobStartedResponse(**started)


@router.post(
    "/knowledge-base-documents/{document_id}/delete-vectors",
    response_model=JobStartedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Remove a knowledge base document from the vector index",
    operation_id="start_document_vector_deletion",
)
async def delete_document_vectors(
    document_id: str,
    payload: DeleteDocumentVectorsRequest,
    job_service: Annotated[JobService, Depends(get_job_service)],
) -> JobStartedResponse:
    try:
        started = await job_service.start_document_vector_deletion(document_id, payload.organization_id)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.message)
    except JobError as e:
        raise _to_http_error(e)
    return JobStartedResponse(**started)


@router.post(
    "/connections/{connection_id}/run-checks",
    response_model=JobStartedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Run integration checks for a connection",
    operation_id="start_connection_checks",
)
async def run_connection_checks(
    connection_id: str,
    payload: RunConnectionChecksRequest,
    job_service: Annotated[JobService, Depends(get_job_service)],
) -> JobStartedResponse:
    try:
        started = await job_service.start_connection_checks(
            connection_id,
            payload.organization_id,
            payload.provider_slug,
            task_id=payload.task_id,
            check_ids=payload.check_ids,
        )
    except JobError as e:
        raise _to_http_error(e)
    return JobStartedResponse(**started)


@router.get(
    "/{workflow_id}/progress",
    response_model=JobProgressResponse,
    summary="Get a job's batch progress",
    operation_id="get_job_progress",
)
async def get_job_progress(
    workflow_id: str,
    job_service: Annotated[JobService, Depends(get_job_service)],
) -> JobProgressResponse:
    try:
        progress = await job_service.get_progress(workflow_id)
    except JobError as e:
        LOGGER.warning(f"Progress lookup failed for {workflow_id}: {e.message}")
        raise _to_http_error(e)
    return JobProgressResponse(**progress)
