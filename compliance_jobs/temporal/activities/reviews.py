"""Review cadence activities for policies and tasks, plus notification delivery."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from temporalio import activity

from compliance_jobs.core.database import async_session_maker
from compliance_jobs.database.models import Member, Organization, Policy, Task
from compliance_jobs.repositories.policy_repository import PolicyRepository
from compliance_jobs.repositories.task_repository import TaskRepository
from compliance_jobs.services.email import (
    EmailService,
    ReviewRecipient,
    build_review_recipients,
    render_review_email,
)
from compliance_jobs.services.review_schedule import TaskReviewStatus, get_target_status, is_overdue
from compliance_jobs.temporal.core.activity_registry import ActivityRegistry
from compliance_jobs.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _person(member: Optional[Member]) -> Optional[Dict[str, str]]:
    if member is None or member.user is None:
        return None
    return {"user_id": member.user.id, "email": member.user.email, "name": member.user.name or ""}


def _owners(organization: Organization) -> List[Dict[str, str]]:
    owners = []
    for member in organization.members:
        if "owner" in (member.role or "") and not member.deactivated:
            person = _person(member)
            if person:
                owners.append(person)
    return owners


def _review_record(record_id: str, name: str, organization: Organization, assignee: Optional[Member]) -> Dict[str, Any]:
    return {
        "id": record_id,
        "name": name,
        "organization_id": organization.id,
        "organization_name": organization.name,
        "owners": _owners(organization),
        "assignee": _person(assignee),
    }


def _automation_data(task: Task) -> Dict[str, List[Dict[str, Any]]]:
    automations = [
        {
            "id": automation.id,
            "runs": [
                {"evaluation_status": run.evaluation_status}
                for run in sorted(automation.runs, key=lambda r: r.created_at, reverse=True)
            ],
        }
        for automation in task.evidence_automations
        if automation.is_enabled
    ]
    check_runs = [
        {"check_id": run.check_id, "status": run.status, "created_at": run.created_at}
        for run in task.integration_check_runs
    ]
    return {"evidence_automations": automations, "integration_check_runs": check_runs}


@ActivityRegistry.register("reviews", "mark_overdue_policies")
@activity.defn
async def mark_overdue_policies() -> Dict[str, Any]:
    """Move overdue published policies to ``needs_review`` in one bulk update."""
    now = datetime.now(timezone.utc)
    async with async_session_maker() as session:
        repository = PolicyRepository(session)
        candidates = await repository.list_review_candidates()
        overdue: List[Policy] = [p for p in candidates if is_overdue(p.review_date, p.frequency, now)]
        LOGGER.info(f"Found {len(overdue)} policies past their computed review deadline")

        policy_ids = [policy.id for policy in overdue]
        updated = await repository.bulk_mark_needs_review(policy_ids)
        records = [_review_record(p.id, p.name, p.organization, p.assignee) for p in overdue]

    recipients = build_review_recipients(records, "policy")
    return {
        "success": True,
        "total_checked": len(candidates),
        "updated_count": updated,
        "updated_policy_ids": policy_ids,
        "recipients": [r.model_dump() for r in recipients],
    }


@ActivityRegistry.register("reviews", "apply_task_review_statuses")
@activity.defn
async def apply_task_review_statuses() -> Dict[str, Any]:
    """Re-open overdue done tasks according to their automation results.

    Tasks without automations go back to ``todo``, tasks with a failing
    automation become ``failed``, tasks whose automations all pass stay done.
    """
    now = datetime.now(timezone.utc)
    async with async_session_maker() as session:
        repository = TaskRepository(session)
        candidates = await repository.list_review_candidates()
        overdue = [t for t in candidates if is_overdue(t.review_date, t.frequency, now)]

        by_status: Dict[TaskReviewStatus, List[Task]] = {status: [] for status in TaskReviewStatus}
        for task in overdue:
            data = _automation_data(task)
            by_status[get_target_status(data["evidence_automations"], data["integration_check_runs"])].append(task)

        to_todo = by_status[TaskReviewStatus.TODO]
        to_failed = by_status[TaskReviewStatus.FAILED]
        kept_done = by_status[TaskReviewStatus.DONE]
        LOGGER.info(
            f'{len(to_todo)} tasks -> "todo", {len(to_failed)} tasks -> "failed", '
            f'{len(kept_done)} tasks kept as "done"'
        )

        todo_count = await repository.bulk_update_status([t.id for t in to_todo], TaskReviewStatus.TODO.value)
        failed_count = await repository.bulk_update_status([t.id for t in to_failed], TaskReviewStatus.FAILED.value)
        updated = to_todo + to_failed
        records = [_review_record(t.id, t.title, t.organization, t.assignee) for t in updated]

    recipients = build_review_recipients(records, "task")
    return {
        "success": True,
        "total_checked": len(overdue),
        "updated_to_todo": todo_count,
        "updated_to_failed": failed_count,
        "tasks_kept_done": len(kept_done),
        "updated_task_ids": [t.id for t in updated],
        "recipients": [r.model_dump() for r in recipients],
    }


@ActivityRegistry.register("reviews", "send_review_email_batch")
@activity.defn
async def send_review_email_batch(recipients: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Send one batch of review notifications; each recipient fails independently."""
    messages = [render_review_email(ReviewRecipient.model_validate(r)) for r in recipients]
    outcome = await EmailService().send_many(messages)
    LOGGER.info(f"Review email batch: {outcome['sent']} sent, {outcome['failed']} failed")
    return {"success": True, **outcome}
