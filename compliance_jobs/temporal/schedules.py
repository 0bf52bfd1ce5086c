"""Cron schedules for the scheduled orchestrators.

Schedules live in the Temporal server; the worker registers any that are
missing on startup. Existing schedules are left as they are, so a cron edited
in the Temporal UI is not overwritten on the next deploy.
"""

from dataclasses import dataclass
from typing import List

from temporalio.client import (
    Client,
    Schedule,
    ScheduleActionStartWorkflow,
    ScheduleOverlapPolicy,
    SchedulePolicy,
    ScheduleSpec,
)

from compliance_jobs.temporal.core.constants import DEFAULT_TASK_QUEUE
from compliance_jobs.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class ScheduleDefinition:
    schedule_id: str
    workflow: str
    cron: str  # UTC
    task_queue: str = DEFAULT_TASK_QUEUE

    @property
    def workflow_id(self) -> str:
        return f"{self.schedule_id}-run"


SCHEDULES: List[ScheduleDefinition] = [
    ScheduleDefinition("cloud-security-scan", "CloudSecurityScanOrchestratorWorkflow", "0 */6 * * *"),
    ScheduleDefinition("employee-sync", "EmployeeSyncScheduleWorkflow", "0 7 * * *"),
    ScheduleDefinition("policy-review", "PolicyReviewScheduleWorkflow", "0 6 * * *"),
    ScheduleDefinition("task-review", "TaskReviewScheduleWorkflow", "0 */12 * * *"),
]


def build_schedule(definition: ScheduleDefinition) -> Schedule:
    return Schedule(
        action=ScheduleActionStartWorkflow(
            definition.workflow,
            id=definition.workflow_id,
            task_queue=definition.task_queue,
        ),
        spec=ScheduleSpec(cron_expressions=[definition.cron]),
        policy=SchedulePolicy(overlap=ScheduleOverlapPolicy.SKIP),
    )


async def ensure_schedules(client: Client, definitions: List[ScheduleDefinition] = SCHEDULES) -> List[str]:
    """Create the schedules that do not exist yet.

    Returns:
        List[str]: Ids of the schedules created by this call
    """
    existing = set()
    async for schedule in await client.list_schedules():
        existing.add(schedule.id)

    created = []
    for definition in definitions:
        if definition.schedule_id in existing:
            LOGGER.debug(f"Schedule '{definition.schedule_id}' already exists")
            continue
        await client.create_schedule(definition.schedule_id, build_schedule(definition))
        LOGGER.info(
            f"Created schedule '{definition.schedule_id}'",
            extra={"workflow": definition.workflow, "cron": definition.cron},
        )
        created.append(definition.schedule_id)
    return created
