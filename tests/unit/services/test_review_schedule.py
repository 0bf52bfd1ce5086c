from datetime import date, datetime, timezone

import pytest

from compliance_jobs.services.review_schedule import (
    TaskReviewStatus,
    add_months,
    get_target_status,
    is_overdue,
    next_due_date,
)


@pytest.mark.parametrize(
    "start,months,expected",
    [
        (date(2024, 1, 31), 1, date(2024, 2, 29)),
        (date(2023, 1, 31), 1, date(2023, 2, 28)),
        (date(2024, 8, 31), 3, date(2024, 11, 30)),
        (date(2024, 2, 29), 12, date(2025, 2, 28)),
        (date(2024, 11, 30), 3, date(2025, 2, 28)),
        (date(2024, 3, 15), 1, date(2024, 4, 15)),
    ],
)
def test_add_months_clamps_to_end_of_month(start, months, expected):
    assert add_months(start, months) == expected


def test_add_months_preserves_time_of_day():
    start = datetime(2024, 1, 31, 9, 30, tzinfo=timezone.utc)

    assert add_months(start, 1) == datetime(2024, 2, 29, 9, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "frequency,expected",
    [
        ("daily", date(2024, 2, 1)),
        ("weekly", date(2024, 2, 7)),
        ("monthly", date(2024, 2, 29)),
        ("quarterly", date(2024, 4, 30)),
        ("yearly", date(2025, 1, 31)),
    ],
)
def test_next_due_date_per_frequency(frequency, expected):
    assert next_due_date(date(2024, 1, 31), frequency) == expected


def test_next_due_date_without_frequency_or_date():
    assert next_due_date(date(2024, 1, 1), None) is None
    assert next_due_date(date(2024, 1, 1), "fortnightly") is None
    assert next_due_date(None, "monthly") is None


def test_is_overdue_on_and_after_due_date():
    now = datetime(2024, 2, 29, 12, 0, tzinfo=timezone.utc)

    assert is_overdue(date(2024, 1, 31), "monthly", now) is True
    assert is_overdue(date(2024, 2, 1), "monthly", now) is False
    assert is_overdue(date(2024, 1, 31), None, now) is False


def test_is_overdue_handles_naive_datetimes():
    now = datetime(2024, 3, 1, tzinfo=timezone.utc)

    assert is_overdue(datetime(2024, 2, 1), "weekly", now) is True


def test_task_without_automations_goes_back_to_todo():
    assert get_target_status([], []) == TaskReviewStatus.TODO


def test_latest_automation_run_decides_status():
    passing = {"runs": [{"evaluation_status": "pass"}, {"evaluation_status": "fail"}]}
    failing = {"runs": [{"evaluation_status": "fail"}, {"evaluation_status": "pass"}]}
    never_ran = {"runs": []}

    assert get_target_status([passing], []) == TaskReviewStatus.DONE
    assert get_target_status([passing, failing], []) == TaskReviewStatus.FAILED
    assert get_target_status([never_ran], []) == TaskReviewStatus.FAILED


def test_only_latest_check_run_per_check_counts():
    runs = [
        {"check_id": "github-mfa", "status": "failed", "created_at": datetime(2024, 1, 1)},
        {"check_id": "github-mfa", "status": "success", "created_at": datetime(2024, 1, 2)},
        {"check_id": "aws-iam-mfa", "status": "success", "created_at": datetime(2024, 1, 1)},
    ]

    assert get_target_status([], runs) == TaskReviewStatus.DONE

    runs.append({"check_id": "aws-iam-mfa", "status": "failed", "created_at": datetime(2024, 1, 3)})
    assert get_target_status([], runs) == TaskReviewStatus.FAILED
