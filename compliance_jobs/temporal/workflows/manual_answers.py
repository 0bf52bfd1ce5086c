"""On-demand bulk deletion of an organization's manual answers."""

from typing import Dict

from temporalio import workflow

from compliance_jobs.temporal.core.base_workflow import BatchOrchestratorWorkflow
from compliance_jobs.temporal.core.constants import MANUAL_ANSWER_BATCH_SIZE
from compliance_jobs.temporal.core.workflow_registry import WorkflowRegistry, WorkflowType


@WorkflowRegistry.register(
    category=WorkflowType.ON_DEMAND,
    dependencies=["list_manual_answer_ids", "delete_manual_answer"],
)
@workflow.defn
class DeleteAllManualAnswersWorkflow(BatchOrchestratorWorkflow):
    """Delete manual answers from the vector index and database in batches of 100.

    Payload: ``organization_id`` and optionally ``manual_answer_ids``; without
    ids every manual answer of the organization is deleted. Large deletions
    continue as new with the ids not yet reached.
    """

    @workflow.run
    async def run(self, payload: Dict) -> dict:
        organization_id = payload["organization_id"]
        batch_size = payload.get("batch_size") or MANUAL_ANSWER_BATCH_SIZE

        manual_answer_ids = payload.get("manual_answer_ids")
        if manual_answer_ids is None:
            manual_answer_ids = await self._execute("list_manual_answer_ids", organization_id)

        workflow.logger.info(
            f"Deleting {len(manual_answer_ids)} manual answers for organization {organization_id}"
        )

        summary = await self._fan_out(
            manual_answer_ids,
            batch_size,
            "delete_manual_answer",
            args_for=lambda answer_id: [answer_id, organization_id],
            item_key=lambda answer_id: answer_id,
            carried=payload.get("carried"),
        )
        if self._remaining:
            self._continue_as_new({**payload, "batch_size": batch_size}, "manual_answer_ids", summary)

        return {
            "success": summary.failed == 0,
            "organization_id": organization_id,
            "deleted_count": summary.succeeded,
            **summary.to_dict(include_results=False),
        }
