"""On-demand vector cleanup for a deleted knowledge base document."""

from typing import Dict

from temporalio import workflow

from compliance_jobs.services.batching import TaskResult
from compliance_jobs.temporal.core.base_workflow import BatchOrchestratorWorkflow
from compliance_jobs.temporal.core.workflow_registry import WorkflowRegistry, WorkflowType


@WorkflowRegistry.register(
    category=WorkflowType.ON_DEMAND,
    dependencies=["delete_knowledge_base_document_vectors"],
)
@workflow.defn
class DeleteKnowledgeBaseDocumentWorkflow(BatchOrchestratorWorkflow):
    @workflow.run
    async def run(self, payload: Dict) -> dict:
        document_id = payload["document_id"]
        organization_id = payload["organization_id"]

        self._progress.start(total=1, total_batches=1)
        self._progress.current_batch = 1
        result = await self._dispatch("delete_knowledge_base_document_vectors", document_id, organization_id)
        self._progress.record(TaskResult.from_payload(result, item_id=document_id))
        self._progress.status = "completed"

        return {"document_id": document_id, **result}
