"""Shared orchestrator behaviour: progress query and batched activity fan-out."""

import asyncio
from typing import Any, Callable, Dict, List, NoReturn, Optional, Sequence

from temporalio import workflow
from temporalio.exceptions import ActivityError

from compliance_jobs.services.batching import BatchProgress, BatchSummary, TaskResult, run_in_batches
from compliance_jobs.temporal.core.constants import MAX_BATCHES_PER_RUN
from compliance_jobs.temporal.core.retry_policies import options_for

# Failures handed to the next run; counts are always carried in full
MAX_CARRIED_FAILURES = 500


def activity_error_message(error: ActivityError) -> str:
    """Message of the innermost failure behind an activity error."""
    cause = error.cause
    while cause is not None and getattr(cause, "cause", None) is not None:
        cause = cause.cause
    return str(cause or error) or "Activity failed"


class BatchOrchestratorWorkflow:
    """Base class for orchestrator workflows.

    Subclasses define ``@workflow.run``; this class owns the progress record
    exposed through the ``get_progress`` query.

    Fan-out handles at most ``MAX_BATCHES_PER_RUN`` batches per run (fewer
    when Temporal suggests continuing as new). Items it did not reach are
    left in ``_remaining`` for ``_continue_as_new``, which starts a fresh run
    with them and the counts so far, keeping each run's event history small.
    """

    def __init__(self) -> None:
        self._progress = BatchProgress()
        self._remaining: List[Any] = []

    @workflow.query
    def get_progress(self) -> dict:
        """Query handler for progress polling."""
        return self._progress.to_dict()

    async def _call(self, activity_name: str, *args: Any) -> Any:
        """Run one activity with its declared timeout and retry policy."""
        options = options_for(activity_name)
        return await workflow.execute_activity(
            activity_name,
            args=list(args),
            start_to_close_timeout=options.start_to_close_timeout,
            retry_policy=options.retry_policy,
        )

    async def _execute(self, activity_name: str, *args: Any) -> Any:
        """Run a bookkeeping activity; exhausted retries fail the whole run."""
        try:
            return await self._call(activity_name, *args)
        except ActivityError:
            self._progress.fail()
            raise

    async def _dispatch(self, activity_name: str, *args: Any) -> Dict[str, Any]:
        """Run a worker activity; exhausted retries become a failure result."""
        try:
            return await self._call(activity_name, *args)
        except ActivityError as e:
            message = activity_error_message(e)
            workflow.logger.warning(f"{activity_name} failed after retries: {message}")
            return TaskResult.failure(None, message).to_dict()

    async def _fan_out(
        self,
        items: Sequence[Any],
        batch_size: int,
        activity_name: str,
        args_for: Callable[[Any], List[Any]],
        item_key: Callable[[Any], Optional[str]],
        carried: Optional[Dict[str, Any]] = None,
    ) -> BatchSummary:
        """Dispatch ``activity_name`` per item, continuing the counts in ``carried``."""
        async def _worker(item: Any) -> Dict[str, Any]:
            return await self._dispatch(activity_name, *args_for(item))

        def _log_batch(number: int, results: List[TaskResult]) -> None:
            failed = sum(1 for r in results if not r.success)
            workflow.logger.info(
                f"{activity_name}: batch {number}/{self._progress.total_batches} done "
                f"({len(results) - failed} ok, {failed} failed)"
            )

        def _should_continue(batches_done: int) -> bool:
            if batches_done >= MAX_BATCHES_PER_RUN:
                return False
            return not workflow.info().is_continue_as_new_suggested()

        summary = BatchSummary.from_dict(carried)
        carried_total = summary.total
        summary = await run_in_batches(
            items,
            batch_size,
            _worker,
            progress=self._progress,
            on_batch_complete=_log_batch,
            item_key=item_key,
            summary=summary,
            should_continue=_should_continue,
        )
        self._remaining = list(items[summary.total - carried_total:])
        return summary

    def _continue_as_new(self, payload: Dict[str, Any], items_key: str, summary: BatchSummary) -> NoReturn:
        """Restart this workflow on ``_remaining`` with the counts so far."""
        carried = summary.to_dict(include_results=False)
        carried["failures"] = carried["failures"][-MAX_CARRIED_FAILURES:]
        workflow.logger.info(
            f"Continuing as new after {summary.total} items, {len(self._remaining)} left"
        )
        workflow.continue_as_new({**payload, items_key: self._remaining, "carried": carried})

    async def _sleep(self, seconds: float) -> None:
        # asyncio.sleep is a durable timer inside a workflow
        await asyncio.sleep(seconds)
