"""Scheduled review cadence workflows for policies and tasks."""

from typing import Any, Dict, List, Optional

from temporalio import workflow
from temporalio.exceptions import ActivityError

from compliance_jobs.services.email import send_in_rate_limited_batches
from compliance_jobs.temporal.core.base_workflow import BatchOrchestratorWorkflow
from compliance_jobs.temporal.core.constants import EMAIL_BATCH_DELAY_SECONDS, EMAIL_BATCH_SIZE
from compliance_jobs.temporal.core.workflow_registry import WorkflowRegistry, WorkflowType


class ReviewNotificationWorkflow(BatchOrchestratorWorkflow):
    """Sends review notifications in rate-limited batches with a durable delay."""

    async def _notify(self, recipients: List[Dict[str, Any]], payload: Dict) -> Dict[str, int]:
        batch_size = payload.get("email_batch_size") or EMAIL_BATCH_SIZE
        delay = payload.get("email_batch_delay_seconds", EMAIL_BATCH_DELAY_SECONDS)
        total_batches = -(-len(recipients) // batch_size)
        self._progress.start(total=len(recipients), total_batches=total_batches)

        async def _send_batch(batch: List[Dict[str, Any]]) -> Dict[str, Any]:
            self._progress.current_batch += 1
            try:
                outcome = await self._call("send_review_email_batch", batch)
            except ActivityError:
                self._progress.completed += len(batch)
                self._progress.failed += len(batch)
                raise
            self._progress.completed += len(batch)
            self._progress.failed += int(outcome.get("failed", 0))
            return outcome

        outcome = await send_in_rate_limited_batches(
            recipients, batch_size, delay, _send_batch, sleep=self._sleep, logger=workflow.logger
        )
        self._progress.status = "completed"
        return outcome


@WorkflowRegistry.register(
    category=WorkflowType.SCHEDULED,
    dependencies=["mark_overdue_policies", "send_review_email_batch"],
)
@workflow.defn
class PolicyReviewScheduleWorkflow(ReviewNotificationWorkflow):
    @workflow.run
    async def run(self, payload: Optional[Dict] = None) -> dict:
        payload = payload or {}
        outcome = await self._execute("mark_overdue_policies")
        workflow.logger.info(f"Marked {outcome['updated_count']} policies as needs_review")

        emails = await self._notify(outcome.get("recipients") or [], payload)
        return {
            "success": True,
            "total_checked": outcome["total_checked"],
            "updated_count": outcome["updated_count"],
            "updated_policy_ids": outcome["updated_policy_ids"],
            "emails": emails,
        }


@WorkflowRegistry.register(
    category=WorkflowType.SCHEDULED,
    dependencies=["apply_task_review_statuses", "send_review_email_batch"],
)
@workflow.defn
class TaskReviewScheduleWorkflow(ReviewNotificationWorkflow):
    @workflow.run
    async def run(self, payload: Optional[Dict] = None) -> dict:
        payload = payload or {}
        outcome = await self._execute("apply_task_review_statuses")
        workflow.logger.info(
            f"Updated {outcome['updated_to_todo']} tasks to todo and {outcome['updated_to_failed']} to failed"
        )

        emails = await self._notify(outcome.get("recipients") or [], payload)
        return {
            "success": True,
            "total_checked": outcome["total_checked"],
            "updated_to_todo": outcome["updated_to_todo"],
            "updated_to_failed": outcome["updated_to_failed"],
            "tasks_kept_done": outcome["tasks_kept_done"],
            "updated_task_ids": outcome["updated_task_ids"],
            "emails": emails,
        }
