"""Daily employee sync from HR and directory providers."""

from typing import Dict, Optional

from temporalio import workflow

from compliance_jobs.temporal.core.base_workflow import BatchOrchestratorWorkflow
from compliance_jobs.temporal.core.constants import EMPLOYEE_SYNC_BATCH_SIZE
from compliance_jobs.temporal.core.workflow_registry import WorkflowRegistry, WorkflowType


@WorkflowRegistry.register(
    category=WorkflowType.SCHEDULED,
    dependencies=["list_employee_sync_targets", "sync_employees_for_connection"],
)
@workflow.defn
class EmployeeSyncScheduleWorkflow(BatchOrchestratorWorkflow):
    """Sync employees for every organization with a sync provider.

    After continuing as new, ``results`` covers the final run only; counts
    cover every run.
    """

    @workflow.run
    async def run(self, payload: Optional[Dict] = None) -> dict:
        payload = payload or {}
        batch_size = payload.get("batch_size") or EMPLOYEE_SYNC_BATCH_SIZE

        targets = payload.get("targets")
        if targets is None:
            targets = await self._execute("list_employee_sync_targets")
        if not targets:
            workflow.logger.info("No valid sync connections found for selected providers")
            self._progress.status = "completed"
            return {"success": True, "syncs_triggered": 0, "success_count": 0, "failure_count": 0, "results": []}

        summary = await self._fan_out(
            targets,
            batch_size,
            "sync_employees_for_connection",
            args_for=lambda t: [t["connection_id"], t["organization_id"], t["provider_slug"]],
            item_key=lambda t: t["connection_id"],
            carried=payload.get("carried"),
        )
        if self._remaining:
            self._continue_as_new({**payload, "batch_size": batch_size}, "targets", summary)

        workflow.logger.info(
            f"Employee sync schedule completed: {summary.succeeded} succeeded, {summary.failed} failed"
        )
        return {
            "success": summary.failed == 0,
            "syncs_triggered": summary.total,
            "success_count": summary.succeeded,
            "failure_count": summary.failed,
            "results": [r.to_dict() for r in summary.results],
        }
