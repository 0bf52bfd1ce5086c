"""On-demand check runs after a connection is established or a task is linked."""

from typing import Dict

from temporalio import workflow

from compliance_jobs.services.batching import TaskResult
from compliance_jobs.temporal.core.base_workflow import BatchOrchestratorWorkflow
from compliance_jobs.temporal.core.workflow_registry import WorkflowRegistry, WorkflowType


@WorkflowRegistry.register(
    category=WorkflowType.ON_DEMAND,
    dependencies=["run_connection_checks", "run_task_integration_checks"],
)
@workflow.defn
class RunConnectionChecksWorkflow(BatchOrchestratorWorkflow):
    """Run all checks of a connection, or only a task's checks when ``task_id`` is given."""

    @workflow.run
    async def run(self, payload: Dict) -> dict:
        connection_id = payload["connection_id"]
        organization_id = payload["organization_id"]
        provider_slug = payload["provider_slug"]
        task_id = payload.get("task_id")

        self._progress.start(total=1, total_batches=1)
        self._progress.current_batch = 1

        if task_id:
            result = await self._dispatch(
                "run_task_integration_checks",
                task_id,
                connection_id,
                provider_slug,
                organization_id,
                payload.get("check_ids") or [],
            )
        else:
            result = await self._dispatch("run_connection_checks", connection_id, organization_id, provider_slug)

        self._progress.record(TaskResult.from_payload(result, item_id=task_id or connection_id))
        self._progress.status = "completed"
        return result
