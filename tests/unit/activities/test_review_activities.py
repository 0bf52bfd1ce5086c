from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from compliance_jobs.temporal.activities.reviews import (
    apply_task_review_statuses,
    mark_overdue_policies,
    send_review_email_batch,
)

MODULE = "compliance_jobs.temporal.activities.reviews"

TODAY = datetime.now(timezone.utc).date()


def _member(user_id, email, role="employee", deactivated=False):
    return SimpleNamespace(
        role=role,
        deactivated=deactivated,
        user=SimpleNamespace(id=user_id, email=email, name=user_id.title()),
    )


OWNER = _member("usr_owner", "owner@acme.test", role="owner")
ASSIGNEE = _member("usr_dev", "dev@acme.test")
ORGANIZATION = SimpleNamespace(
    id="org_1",
    name="Acme",
    members=[OWNER, ASSIGNEE, _member("usr_gone", "gone@acme.test", role="owner", deactivated=True)],
)


def _policy(policy_id, review_date, frequency="monthly", assignee=ASSIGNEE):
    return SimpleNamespace(
        id=policy_id,
        name=f"Policy {policy_id}",
        review_date=review_date,
        frequency=frequency,
        organization=ORGANIZATION,
        assignee=assignee,
    )


def _task(task_id, automations=(), check_runs=()):
    return SimpleNamespace(
        id=task_id,
        title=f"Task {task_id}",
        review_date=date(2020, 1, 1),
        frequency="monthly",
        organization=ORGANIZATION,
        assignee=None,
        evidence_automations=list(automations),
        integration_check_runs=list(check_runs),
    )


def _automation(*statuses, enabled=True):
    start = datetime(2024, 1, 1)
    return SimpleNamespace(
        id="auto_1",
        is_enabled=enabled,
        runs=[
            SimpleNamespace(evaluation_status=status, created_at=start + timedelta(days=i))
            for i, status in enumerate(statuses)
        ],
    )


@pytest.mark.asyncio
async def test_mark_overdue_policies_updates_only_overdue(activity_env, session_maker):
    repository = SimpleNamespace(
        list_review_candidates=AsyncMock(
            return_value=[
                _policy("pol_old", date(2020, 1, 31)),
                _policy("pol_fresh", TODAY, frequency="yearly"),
            ]
        ),
        bulk_mark_needs_review=AsyncMock(return_value=1),
    )

    with patch(f"{MODULE}.async_session_maker", session_maker), \
            patch(f"{MODULE}.PolicyRepository", return_value=repository):
        result = await activity_env.run(mark_overdue_policies)

    repository.bulk_mark_needs_review.assert_awaited_once_with(["pol_old"])
    assert result["total_checked"] == 2
    assert result["updated_count"] == 1
    assert result["updated_policy_ids"] == ["pol_old"]
    assert {r["user_id"] for r in result["recipients"]} == {"usr_owner", "usr_dev"}
    assert all(r["record_type"] == "policy" for r in result["recipients"])


@pytest.mark.asyncio
async def test_apply_task_review_statuses_by_automation_outcome(activity_env, session_maker):
    tasks = [
        _task("tsk_manual"),
        _task("tsk_failing", automations=[_automation("pass", "fail")]),
        _task("tsk_passing", automations=[_automation("fail", "pass")]),
        _task("tsk_disabled_only", automations=[_automation("fail", enabled=False)]),
    ]
    repository = SimpleNamespace(
        list_review_candidates=AsyncMock(return_value=tasks),
        bulk_update_status=AsyncMock(side_effect=lambda ids, status: len(ids)),
    )

    with patch(f"{MODULE}.async_session_maker", session_maker), \
            patch(f"{MODULE}.TaskRepository", return_value=repository):
        result = await activity_env.run(apply_task_review_statuses)

    calls = {c.args[1]: c.args[0] for c in repository.bulk_update_status.await_args_list}
    assert calls == {"todo": ["tsk_manual", "tsk_disabled_only"], "failed": ["tsk_failing"]}
    assert result["updated_to_todo"] == 2
    assert result["updated_to_failed"] == 1
    assert result["tasks_kept_done"] == 1
    assert result["total_checked"] == 4
    assert {r["record_id"] for r in result["recipients"]} == {"tsk_manual", "tsk_disabled_only", "tsk_failing"}


@pytest.mark.asyncio
async def test_send_review_email_batch(activity_env):
    recipients = [
        {
            "user_id": "usr_1",
            "email": "owner@acme.test",
            "name": "Olive",
            "record_type": "policy",
            "record_id": "pol_1",
            "record_name": "Access Control",
            "organization_id": "org_1",
            "organization_name": "Acme",
        }
    ]

    with patch(f"{MODULE}.EmailService") as service_cls:
        service_cls.return_value.send_many = AsyncMock(return_value={"sent": 1, "failed": 0, "errors": []})
        result = await activity_env.run(send_review_email_batch, recipients)

    assert result == {"success": True, "sent": 1, "failed": 0, "errors": []}
    messages = service_cls.return_value.send_many.call_args.args[0]
    assert messages[0].to == "owner@acme.test"
