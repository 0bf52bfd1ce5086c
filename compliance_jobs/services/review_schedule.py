"""Review cadence date arithmetic and task review status rules."""

import calendar
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, TypeVar, Union

D = TypeVar("D", date, datetime)


class ReviewFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class TaskReviewStatus(str, Enum):
    TODO = "todo"
    DONE = "done"
    FAILED = "failed"


def add_days(value: D, days: int) -> D:
    return value + timedelta(days=days)


def add_months(value: D, months: int) -> D:
    """Add calendar months, clamping to the last day of a shorter target month.

    Jan 31 + 1 month is Feb 28 (or 29), Aug 31 + 3 months is Nov 30 and
    Feb 29 + 12 months is Feb 28. Time of day is preserved for datetimes.
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return value.replace(year=year, month=month, day=min(value.day, last_day))


_FREQUENCY_STEPS = {
    ReviewFrequency.DAILY: (add_days, 1),
    ReviewFrequency.WEEKLY: (add_days, 7),
    ReviewFrequency.MONTHLY: (add_months, 1),
    ReviewFrequency.QUARTERLY: (add_months, 3),
    ReviewFrequency.YEARLY: (add_months, 12),
}


def next_due_date(review_date: Optional[D], frequency: Union[str, ReviewFrequency, None]) -> Optional[D]:
    """Date the next review falls due, or None for a missing/unknown frequency."""
    if review_date is None or frequency is None:
        return None
    try:
        step, amount = _FREQUENCY_STEPS[ReviewFrequency(frequency)]
    except ValueError:
        return None
    return step(review_date, amount)


def is_overdue(
    review_date: Optional[Union[date, datetime]],
    frequency: Union[str, ReviewFrequency, None],
    now: datetime,
) -> bool:
    """True when the computed next due date is at or before ``now``."""
    due = next_due_date(review_date, frequency)
    if due is None:
        return False
    if isinstance(due, datetime):
        if due.tzinfo is None and now.tzinfo is not None:
            due = due.replace(tzinfo=now.tzinfo)
        elif due.tzinfo is not None and now.tzinfo is None:
            now = now.replace(tzinfo=due.tzinfo)
        return due <= now
    return due <= now.date()


def _latest_check_runs(integration_check_runs: Iterable[Mapping[str, Any]]) -> Dict[str, Mapping[str, Any]]:
    latest: Dict[str, Mapping[str, Any]] = {}
    for run in integration_check_runs:
        check_id = run.get("check_id")
        current = latest.get(check_id)
        if current is None or run.get("created_at") > current.get("created_at"):
            latest[check_id] = run
    return latest


def get_target_status(
    evidence_automations: Iterable[Mapping[str, Any]],
    integration_check_runs: Iterable[Mapping[str, Any]],
) -> TaskReviewStatus:
    """Decide what an overdue ``done`` task becomes.

    Args:
        evidence_automations: Enabled custom automations, each with a ``runs``
            list ordered newest first (``evaluation_status`` per run)
        integration_check_runs: App automation runs with ``check_id``,
            ``status`` and ``created_at``, in any order

    Returns:
        TODO when nothing is automated, FAILED when any automation's latest
        run is not passing, otherwise DONE.
    """
    automations = list(evidence_automations)
    check_runs = list(integration_check_runs)

    if not automations and not check_runs:
        return TaskReviewStatus.TODO

    for automation in automations:
        runs = automation.get("runs") or []
        if not runs or runs[0].get("evaluation_status") != "pass":
            return TaskReviewStatus.FAILED

    for run in _latest_check_runs(check_runs).values():
        if run.get("status") != "success":
            return TaskReviewStatus.FAILED

    return TaskReviewStatus.DONE
