"""Scheduled cloud security scan orchestrator."""

from typing import Dict, Optional

from temporalio import workflow

from compliance_jobs.temporal.core.base_workflow import BatchOrchestratorWorkflow
from compliance_jobs.temporal.core.constants import CLOUD_SCAN_BATCH_SIZE
from compliance_jobs.temporal.core.workflow_registry import WorkflowRegistry, WorkflowType


@WorkflowRegistry.register(
    category=WorkflowType.SCHEDULED,
    dependencies=["list_cloud_scan_targets", "run_cloud_security_scan"],
)
@workflow.defn
class CloudSecurityScanOrchestratorWorkflow(BatchOrchestratorWorkflow):
    """Fan out a scan to every active cloud-security connection, 50 at a time.

    Targets are listed once; a run that continues as new passes the targets
    it did not reach in ``targets``.
    """

    @workflow.run
    async def run(self, payload: Optional[Dict] = None) -> dict:
        payload = payload or {}
        batch_size = payload.get("batch_size") or CLOUD_SCAN_BATCH_SIZE

        targets = payload.get("targets")
        if targets is None:
            targets = await self._execute("list_cloud_scan_targets")
        workflow.logger.info(f"Scanning {len(targets)} cloud connections in batches of {batch_size}")

        summary = await self._fan_out(
            targets,
            batch_size,
            "run_cloud_security_scan",
            args_for=lambda t: [t["connection_id"], t["organization_id"]],
            item_key=lambda t: t["connection_id"],
            carried=payload.get("carried"),
        )
        if self._remaining:
            self._continue_as_new({**payload, "batch_size": batch_size}, "targets", summary)

        workflow.logger.info(f"Cloud security scans done: {summary.succeeded} succeeded, {summary.failed} failed")
        return {"success": summary.failed == 0, **summary.to_dict(include_results=False)}
