from contextlib import ExitStack
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from temporalio.exceptions import ActivityError, ApplicationError


class ContinuedAsNew(Exception):
    """Raised by the patched ``workflow.continue_as_new``; carries the new payload."""

    def __init__(self, payload):
        super().__init__("continue as new")
        self.payload = payload


def make_activity_error(message: str = "activity failed", cause: str = None) -> ActivityError:
    error = ActivityError(
        message,
        scheduled_event_id=1,
        started_event_id=2,
        identity="worker-1",
        activity_type="test",
        activity_id="1",
        retry_state=None,
    )
    if cause:
        error.__cause__ = ApplicationError(cause)
    return error


@pytest.fixture
def activity_error():
    return make_activity_error


@pytest.fixture
def continued_as_new():
    return ContinuedAsNew


@pytest.fixture
def activities():
    """Registry of fake activity implementations keyed by activity name."""
    return {}


@pytest.fixture
def workflow_module(activities):
    """Patch ``workflow`` in the base class and every orchestrator module.

    ``execute_activity`` dispatches to ``activities[name]``; ``continue_as_new``
    raises ``ContinuedAsNew`` like the real call ends the run.
    """

    async def execute_activity(name, args=(), **options):
        return await activities[name](*args)

    def continue_as_new(payload):
        raise ContinuedAsNew(payload)

    fake = MagicMock()
    fake.execute_activity = AsyncMock(side_effect=execute_activity)
    fake.continue_as_new = MagicMock(side_effect=continue_as_new)
    fake.info.return_value.is_continue_as_new_suggested.return_value = False

    modules = [
        "compliance_jobs.temporal.core.base_workflow",
        "compliance_jobs.temporal.workflows.cloud_security_scan",
        "compliance_jobs.temporal.workflows.manual_answers",
        "compliance_jobs.temporal.workflows.knowledge_base",
        "compliance_jobs.temporal.workflows.connection_checks",
        "compliance_jobs.temporal.workflows.employee_sync",
        "compliance_jobs.temporal.workflows.reviews",
    ]
    with ExitStack() as stack:
        for module in modules:
            stack.enter_context(patch(f"{module}.workflow", fake))
        yield fake
