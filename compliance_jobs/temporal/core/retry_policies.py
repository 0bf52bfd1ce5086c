"""Retry policy and timeout declared for every activity.

Retries are left to Temporal: activities raise for infrastructure errors
(database unreachable, unexpected exceptions) and return tagged failure
results for business errors, which are never retried.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Dict

from temporalio.common import RetryPolicy

CONNECTION_CHECKS_RETRY = RetryPolicy(
    maximum_attempts=3,
    backoff_coefficient=2.0,
    initial_interval=timedelta(seconds=1),
    maximum_interval=timedelta(seconds=30),
)

VECTOR_DELETE_RETRY = RetryPolicy(maximum_attempts=3)

CLOUD_SCAN_RETRY = RetryPolicy(maximum_attempts=2)

EMPLOYEE_SYNC_RETRY = RetryPolicy(maximum_attempts=2)

EMAIL_BATCH_RETRY = RetryPolicy(maximum_attempts=3)

BOOKKEEPING_RETRY = RetryPolicy(
    maximum_attempts=3,
    initial_interval=timedelta(seconds=5),
    maximum_interval=timedelta(seconds=30),
)


@dataclass(frozen=True)
class ActivityOptions:
    start_to_close_timeout: timedelta
    retry_policy: RetryPolicy


ACTIVITY_OPTIONS: Dict[str, ActivityOptions] = {
    # Worker tasks
    "run_cloud_security_scan": ActivityOptions(timedelta(minutes=10), CLOUD_SCAN_RETRY),
    "run_connection_checks": ActivityOptions(timedelta(minutes=15), CONNECTION_CHECKS_RETRY),
    "run_task_integration_checks": ActivityOptions(timedelta(minutes=15), CONNECTION_CHECKS_RETRY),
    "sync_employees_for_connection": ActivityOptions(timedelta(minutes=10), EMPLOYEE_SYNC_RETRY),
    "delete_manual_answer": ActivityOptions(timedelta(minutes=2), VECTOR_DELETE_RETRY),
    "delete_knowledge_base_document_vectors": ActivityOptions(timedelta(minutes=10), VECTOR_DELETE_RETRY),
    "send_review_email_batch": ActivityOptions(timedelta(minutes=2), EMAIL_BATCH_RETRY),
    # Discovery and bookkeeping
    "list_cloud_scan_targets": ActivityOptions(timedelta(minutes=2), BOOKKEEPING_RETRY),
    "list_employee_sync_targets": ActivityOptions(timedelta(minutes=2), BOOKKEEPING_RETRY),
    "list_manual_answer_ids": ActivityOptions(timedelta(minutes=2), BOOKKEEPING_RETRY),
    "mark_overdue_policies": ActivityOptions(timedelta(minutes=5), BOOKKEEPING_RETRY),
    "apply_task_review_statuses": ActivityOptions(timedelta(minutes=10), BOOKKEEPING_RETRY),
}

DEFAULT_ACTIVITY_OPTIONS = ActivityOptions(timedelta(minutes=5), BOOKKEEPING_RETRY)


def options_for(activity_name: str) -> ActivityOptions:
    return ACTIVITY_OPTIONS.get(activity_name, DEFAULT_ACTIVITY_OPTIONS)
