"""Starts on-demand orchestrators and reads their progress from Temporal."""

from typing import Any, Dict, List, Optional
from uuid import uuid4

from temporalio.client import Client as TemporalClient
from temporalio.service import RPCError, RPCStatusCode

from compliance_jobs.core.exceptions import JobError, JobNotFoundError, ValidationError
from compliance_jobs.core.temporal_client import get_temporal_client
from compliance_jobs.temporal.core.constants import DEFAULT_TASK_QUEUE
from compliance_jobs.utils.logging import get_logger

LOGGER = get_logger(__name__)

DELETE_MANUAL_ANSWERS_WORKFLOW = "DeleteAllManualAnswersWorkflow"
DELETE_KB_DOCUMENT_WORKFLOW = "DeleteKnowledgeBaseDocumentWorkflow"
RUN_CONNECTION_CHECKS_WORKFLOW = "RunConnectionChecksWorkflow"


class JobService:
    """Thin wrapper around the Temporal client for the job API.

    Workflows are started by type name so the API process never imports
    workflow code.
    """

    def __init__(self, client: Optional[TemporalClient] = None, task_queue: str = DEFAULT_TASK_QUEUE):
        self._client = client
        self.task_queue = task_queue

    async def _get_client(self) -> TemporalClient:
        if self._client is None:
            self._client = await get_temporal_client()
        return self._client

    async def _start(self, workflow_name: str, payload: Dict[str, Any], workflow_id: str) -> Dict[str, str]:
        client = await self._get_client()
        try:
            handle = await client.start_workflow(
                workflow_name,
                payload,
                id=workflow_id,
                task_queue=self.task_queue,
            )
        except RPCError as e:
            LOGGER.error(
                f"Failed to start {workflow_name}: {e}",
                exc_info=True,
                extra={"workflow_id": workflow_id},
            )
            raise JobError(f"Failed to start {workflow_name}: {e}", original_error=e)

        LOGGER.info(f"Started {workflow_name}", extra={"workflow_id": handle.id})
        return {"workflow_id": handle.id, "workflow": workflow_name}

    async def start_manual_answer_deletion(
        self, organization_id: str, manual_answer_ids: Optional[List[str]] = None
    ) -> Dict[str, str]:
        if not organization_id:
            raise ValidationError("organization_id is required")
        payload: Dict[str, Any] = {"organization_id": organization_id}
        if manual_answer_ids is not None:
            payload["manual_answer_ids"] = manual_answer_ids
        return await self._start(
            DELETE_MANUAL_ANSWERS_WORKFLOW,
            payload,
            f"delete-manual-answers-{organization_id}-{uuid4().hex[:12]}",
        )

    async def start_document_vector_deletion(self, document_id: str, organization_id: str) -> Dict[str, str]:
        if not document_id or not organization_id:
            raise ValidationError("document_id and organization_id are required")
        return await self._start(
            DELETE_KB_DOCUMENT_WORKFLOW,
            {"document_id": document_id, "organization_id": organization_id},
            f"delete-kb-document-{document_id}",
        )

    async def start_connection_checks(
        self,
        connection_id: str,
        organization_id: str,
        provider_slug: str,
        task_id: Optional[str] = None,
        check_ids: Optional[List[str]] = None,
    ) -> Dict[str, str]:
        payload: Dict[str, Any] = {
            "connection_id": connection_id,
            "organization_id": organization_id,
            "provider_slug": provider_slug,
        }
        if task_id:
            payload["task_id"] = task_id
            payload["check_ids"] = check_ids or []
        return await self._start(
            RUN_CONNECTION_CHECKS_WORKFLOW,
            payload,
            f"connection-checks-{connection_id}-{uuid4().hex[:12]}",
        )

    async def get_progress(self, workflow_id: str) -> Dict[str, Any]:
        """Query a run's ``get_progress`` handler.

        Raises:
            JobNotFoundError: If Temporal has no run with this id
            JobError: If the query fails for any other reason
        """
        client = await self._get_client()
        handle = client.get_workflow_handle(workflow_id)
        try:
            progress = await handle.query("get_progress")
        except RPCError as e:
            if e.status == RPCStatusCode.NOT_FOUND:
                raise JobNotFoundError(f"Job not found: {workflow_id}", original_error=e)
            LOGGER.error(f"Failed to query progress: {e}", exc_info=True, extra={"workflow_id": workflow_id})
            raise JobError(f"Failed to query progress for {workflow_id}: {e}", original_error=e)

        return {"workflow_id": workflow_id, **progress}
