from unittest.mock import AsyncMock, patch

import pytest
from temporalio.exceptions import ActivityError

from compliance_jobs.temporal.core.retry_policies import ACTIVITY_OPTIONS
from compliance_jobs.temporal.workflows.cloud_security_scan import CloudSecurityScanOrchestratorWorkflow
from compliance_jobs.temporal.workflows.connection_checks import RunConnectionChecksWorkflow
from compliance_jobs.temporal.workflows.employee_sync import EmployeeSyncScheduleWorkflow
from compliance_jobs.temporal.workflows.knowledge_base import DeleteKnowledgeBaseDocumentWorkflow
from compliance_jobs.temporal.workflows.manual_answers import DeleteAllManualAnswersWorkflow
from compliance_jobs.temporal.workflows.reviews import PolicyReviewScheduleWorkflow, TaskReviewScheduleWorkflow

def _targets(count, slug="aws"):
    return [
        {"connection_id": f"conn_{i}", "organization_id": f"org_{i}", "provider_slug": slug}
        for i in range(count)
    ]


@pytest.mark.asyncio
async def test_cloud_scan_fans_out_in_batches_of_fifty(workflow_module, activities):
    scanned = []

    async def list_targets():
        return _targets(120)

    async def scan(connection_id, organization_id):
        scanned.append(connection_id)
        return {"success": True, "item_id": connection_id}

    activities.update(list_cloud_scan_targets=list_targets, run_cloud_security_scan=scan)
    wf = CloudSecurityScanOrchestratorWorkflow()

    result = await wf.run(None)

    assert len(scanned) == 120
    assert result["success"] is True
    assert result["total"] == 120
    assert wf.get_progress() == {
        "status": "completed",
        "total": 120,
        "completed": 120,
        "failed": 0,
        "current_batch": 3,
        "total_batches": 3,
    }


@pytest.mark.asyncio
async def test_exhausted_retries_fail_only_that_connection(workflow_module, activities, activity_error):
    async def list_targets():
        return _targets(3)

    async def scan(connection_id, organization_id):
        if connection_id == "conn_1":
            raise activity_error(cause="Platform API unavailable")
        return {"success": True, "item_id": connection_id}

    activities.update(list_cloud_scan_targets=list_targets, run_cloud_security_scan=scan)

    result = await CloudSecurityScanOrchestratorWorkflow().run({})

    assert result["succeeded"] == 2
    assert result["failed"] == 1
    assert result["failures"] == [{"item_id": "conn_1", "error": "Platform API unavailable"}]
    assert result["success"] is False


@pytest.mark.asyncio
async def test_activities_run_with_declared_retry_policy(workflow_module, activities):
    activities.update(
        list_cloud_scan_targets=AsyncMock(return_value=_targets(1)),
        run_cloud_security_scan=AsyncMock(return_value={"success": True}),
    )

    await CloudSecurityScanOrchestratorWorkflow().run(None)

    _, kwargs = workflow_module.execute_activity.call_args
    options = ACTIVITY_OPTIONS["run_cloud_security_scan"]
    assert kwargs["retry_policy"] == options.retry_policy
    assert kwargs["start_to_close_timeout"] == options.start_to_close_timeout
    assert kwargs["args"] == ["conn_0", "org_0"]


@pytest.mark.asyncio
async def test_manual_answer_deletion_lists_ids_when_not_given(workflow_module, activities):
    ids = [f"ma_{i}" for i in range(250)]
    deleted = []

    async def delete(manual_answer_id, organization_id):
        deleted.append((manual_answer_id, organization_id))
        if manual_answer_id == "ma_7":
            return {"success": False, "item_id": "ma_7", "error": "Manual answer not found"}
        return {"success": True, "item_id": manual_answer_id}

    activities.update(list_manual_answer_ids=AsyncMock(return_value=ids), delete_manual_answer=delete)
    wf = DeleteAllManualAnswersWorkflow()

    result = await wf.run({"organization_id": "org_1"})

    assert len(deleted) == 250
    assert all(org == "org_1" for _, org in deleted)
    assert result["deleted_count"] == 249
    assert result["failed"] == 1
    assert wf.get_progress()["total_batches"] == 3
    activities["list_manual_answer_ids"].assert_awaited_once_with("org_1")


@pytest.mark.asyncio
async def test_manual_answer_deletion_uses_given_ids(workflow_module, activities):
    activities.update(
        list_manual_answer_ids=AsyncMock(),
        delete_manual_answer=AsyncMock(return_value={"success": True}),
    )

    result = await DeleteAllManualAnswersWorkflow().run(
        {"organization_id": "org_1", "manual_answer_ids": ["ma_1", "ma_2"]}
    )

    assert result["deleted_count"] == 2
    activities["list_manual_answer_ids"].assert_not_awaited()


@pytest.mark.asyncio
async def test_knowledge_base_document_single_dispatch(workflow_module, activities):
    activities["delete_knowledge_base_document_vectors"] = AsyncMock(
        return_value={"success": True, "item_id": "kbd_1", "deleted_count": 4}
    )
    wf = DeleteKnowledgeBaseDocumentWorkflow()

    result = await wf.run({"document_id": "kbd_1", "organization_id": "org_1"})

    assert result["success"] is True
    assert result["document_id"] == "kbd_1"
    assert wf.get_progress()["completed"] == 1
    assert wf.get_progress()["status"] == "completed"


@pytest.mark.asyncio
async def test_connection_checks_route_task_runs(workflow_module, activities):
    activities.update(
        run_connection_checks=AsyncMock(return_value={"success": True}),
        run_task_integration_checks=AsyncMock(return_value={"success": True}),
    )
    payload = {"connection_id": "conn_1", "organization_id": "org_1", "provider_slug": "github"}

    await RunConnectionChecksWorkflow().run(payload)
    await RunConnectionChecksWorkflow().run({**payload, "task_id": "tsk_1", "check_ids": ["github-mfa"]})

    activities["run_connection_checks"].assert_awaited_once_with("conn_1", "org_1", "github")
    activities["run_task_integration_checks"].assert_awaited_once_with(
        "tsk_1", "conn_1", "github", "org_1", ["github-mfa"]
    )


@pytest.mark.asyncio
async def test_connection_checks_activity_error_becomes_failure(workflow_module, activities, activity_error):
    activities["run_connection_checks"] = AsyncMock(side_effect=activity_error(cause="timeout"))
    wf = RunConnectionChecksWorkflow()

    result = await wf.run({"connection_id": "conn_1", "organization_id": "org_1", "provider_slug": "aws"})

    assert result == {"success": False, "error": "timeout"}
    assert wf.get_progress()["failed"] == 1


@pytest.mark.asyncio
async def test_employee_sync_without_targets(workflow_module, activities):
    activities["list_employee_sync_targets"] = AsyncMock(return_value=[])

    result = await EmployeeSyncScheduleWorkflow().run(None)

    assert result == {"success": True, "syncs_triggered": 0, "success_count": 0, "failure_count": 0, "results": []}


@pytest.mark.asyncio
async def test_employee_sync_reports_per_connection(workflow_module, activities):
    async def sync(connection_id, organization_id, provider_slug):
        if connection_id == "conn_0":
            return {"success": False, "item_id": connection_id, "error": "Rippling sync failed: 500 - boom"}
        return {"success": True, "item_id": connection_id, "imported": 2}

    activities.update(
        list_employee_sync_targets=AsyncMock(return_value=_targets(2, slug="rippling")),
        sync_employees_for_connection=sync,
    )

    result = await EmployeeSyncScheduleWorkflow().run(None)

    assert result["syncs_triggered"] == 2
    assert result["success_count"] == 1
    assert result["failure_count"] == 1
    assert result["results"][1] == {"success": True, "item_id": "conn_1", "imported": 2}


def _recipients(count):
    return [{"user_id": f"usr_{i}", "email": f"u{i}@acme.test"} for i in range(count)]


@pytest.mark.asyncio
async def test_policy_review_sends_rate_limited_batches(workflow_module, activities):
    batches = []

    async def send_batch(recipients):
        batches.append(len(recipients))
        return {"success": True, "sent": len(recipients), "failed": 0, "errors": []}

    activities.update(
        mark_overdue_policies=AsyncMock(
            return_value={
                "success": True,
                "total_checked": 40,
                "updated_count": 3,
                "updated_policy_ids": ["pol_1", "pol_2", "pol_3"],
                "recipients": _recipients(23),
            }
        ),
        send_review_email_batch=send_batch,
    )
    wf = PolicyReviewScheduleWorkflow()
    wf._sleep = AsyncMock()

    result = await wf.run(None)

    assert batches == [10, 10, 3]
    assert wf._sleep.await_count == 2
    assert result["updated_count"] == 3
    assert result["emails"] == {"sent": 23, "failed": 0, "batches": 3}
    assert wf.get_progress()["completed"] == 23


@pytest.mark.asyncio
async def test_task_review_counts_failed_email_batch(workflow_module, activities, activity_error):
    calls = []

    async def send_batch(recipients):
        calls.append(recipients)
        if len(calls) == 1:
            raise activity_error(cause="SMTP down")
        return {"success": True, "sent": len(recipients), "failed": 0, "errors": []}

    activities.update(
        apply_task_review_statuses=AsyncMock(
            return_value={
                "success": True,
                "total_checked": 5,
                "updated_to_todo": 2,
                "updated_to_failed": 1,
                "tasks_kept_done": 2,
                "updated_task_ids": ["tsk_1", "tsk_2", "tsk_3"],
                "recipients": _recipients(12),
            }
        ),
        send_review_email_batch=send_batch,
    )
    wf = TaskReviewScheduleWorkflow()
    wf._sleep = AsyncMock()

    result = await wf.run({"email_batch_size": 10})

    assert len(calls) == 2
    assert result["emails"] == {"sent": 2, "failed": 10, "batches": 2}
    assert result["tasks_kept_done"] == 2
    progress = wf.get_progress()
    assert progress["failed"] == 10
    assert progress["completed"] == 12


@pytest.mark.asyncio
async def test_manual_answer_deletion_continues_as_new_past_batch_budget(
    workflow_module, activities, continued_as_new
):
    ids = [f"ma_{i}" for i in range(5)]
    deleted = []

    async def delete(manual_answer_id, organization_id):
        deleted.append(manual_answer_id)
        if manual_answer_id == "ma_1":
            return {"success": False, "item_id": "ma_1", "error": "Manual answer not found"}
        return {"success": True, "item_id": manual_answer_id}

    activities.update(list_manual_answer_ids=AsyncMock(return_value=ids), delete_manual_answer=delete)

    with patch("compliance_jobs.temporal.core.base_workflow.MAX_BATCHES_PER_RUN", 2):
        first = DeleteAllManualAnswersWorkflow()
        with pytest.raises(continued_as_new) as exc_info:
            await first.run({"organization_id": "org_1", "batch_size": 2})

        next_payload = exc_info.value.payload
        assert deleted == ["ma_0", "ma_1", "ma_2", "ma_3"]
        assert next_payload["manual_answer_ids"] == ["ma_4"]
        assert next_payload["carried"] == {
            "total": 4,
            "succeeded": 3,
            "failed": 1,
            "failures": [{"item_id": "ma_1", "error": "Manual answer not found"}],
        }
        assert first.get_progress()["status"] == "running"

        second = DeleteAllManualAnswersWorkflow()
        result = await second.run(next_payload)

    assert deleted[-1] == "ma_4"
    activities["list_manual_answer_ids"].assert_awaited_once()
    assert result["total"] == 5
    assert result["deleted_count"] == 4
    assert result["failures"] == [{"item_id": "ma_1", "error": "Manual answer not found"}]
    assert second.get_progress() == {
        "status": "completed",
        "total": 5,
        "completed": 5,
        "failed": 1,
        "current_batch": 3,
        "total_batches": 3,
    }


@pytest.mark.asyncio
async def test_cloud_scan_continues_as_new_when_history_grows(workflow_module, activities, continued_as_new):
    scanned = []

    async def scan(connection_id, organization_id):
        scanned.append(connection_id)
        return {"success": True, "item_id": connection_id}

    activities.update(list_cloud_scan_targets=AsyncMock(return_value=_targets(120)), run_cloud_security_scan=scan)
    workflow_module.info.return_value.is_continue_as_new_suggested.return_value = True

    with pytest.raises(continued_as_new) as exc_info:
        await CloudSecurityScanOrchestratorWorkflow().run(None)

    assert len(scanned) == 50
    payload = exc_info.value.payload
    assert [t["connection_id"] for t in payload["targets"]] == [f"conn_{i}" for i in range(50, 120)]
    assert payload["carried"]["total"] == 50
    assert payload["batch_size"] == 50

    workflow_module.info.return_value.is_continue_as_new_suggested.return_value = False
    result = await CloudSecurityScanOrchestratorWorkflow().run(payload)

    assert len(scanned) == 120
    assert result["total"] == 120
    assert result["success"] is True
    activities["list_cloud_scan_targets"].assert_awaited_once()


@pytest.mark.asyncio
async def test_failed_listing_marks_progress_failed(workflow_module, activities, activity_error):
    activities["list_employee_sync_targets"] = AsyncMock(side_effect=activity_error(cause="database unavailable"))
    wf = EmployeeSyncScheduleWorkflow()

    with pytest.raises(ActivityError):
        await wf.run(None)

    assert wf.get_progress()["status"] == "failed"


@pytest.mark.asyncio
async def test_review_notification_errors_log_through_workflow_logger(workflow_module, activities, activity_error):
    async def send_batch(recipients):
        raise activity_error(cause="SMTP down")

    activities.update(
        mark_overdue_policies=AsyncMock(
            return_value={
                "success": True,
                "total_checked": 1,
                "updated_count": 1,
                "updated_policy_ids": ["pol_1"],
                "recipients": _recipients(1),
            }
        ),
        send_review_email_batch=send_batch,
    )

    result = await PolicyReviewScheduleWorkflow().run(None)

    assert result["emails"] == {"sent": 0, "failed": 1, "batches": 1}
    workflow_module.logger.error.assert_called_once()
    assert "Notification batch 1/1 failed" in workflow_module.logger.error.call_args.args[0]
