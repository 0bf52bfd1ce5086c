"""Batch fan-out with partial-failure isolation.

Orchestrator workflows feed their work items through ``run_in_batches``:
batches run one after another, the items inside a batch run concurrently and
every item ends up as exactly one ``TaskResult`` in the returned summary. A
worker that raises only fails its own item.

Nothing in here performs I/O, so the module is safe to use from inside
Temporal workflow code.
"""

import asyncio
import inspect
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Sequence, TypeVar

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """Split ``items`` into consecutive batches of ``size``; the last may be short."""
    if size < 1:
        raise ValueError(f"Batch size must be at least 1, got {size}")
    return [list(items[start:start + size]) for start in range(0, len(items), size)]


@dataclass
class TaskResult:
    """Tagged outcome of one worker invocation."""

    success: bool
    item_id: Optional[str] = None
    error: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, item_id: Optional[str] = None, **data: Any) -> "TaskResult":
        return cls(success=True, item_id=item_id, data=data)

    @classmethod
    def failure(cls, item_id: Optional[str], error: str, **data: Any) -> "TaskResult":
        return cls(success=False, item_id=item_id, error=error, data=data)

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]], item_id: Optional[str] = None) -> "TaskResult":
        """Build a result from the dict an activity returned.

        Anything other than ``success``/``error``/``item_id`` is kept in ``data``.
        A missing or malformed payload counts as a failure.
        """
        if not isinstance(payload, dict):
            return cls.failure(item_id, "Worker returned no result")

        data = {k: v for k, v in payload.items() if k not in ("success", "error", "item_id")}
        success = bool(payload.get("success"))
        error = payload.get("error")
        if not success and not error:
            error = "Unknown error"
        return cls(
            success=success,
            item_id=payload.get("item_id", item_id),
            error=error,
            data=data,
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success}
        if self.item_id is not None:
            result["item_id"] = self.item_id
        if self.error is not None:
            result["error"] = self.error
        result.update(self.data)
        return result


@dataclass
class BatchSummary:
    """Fold over task results. Never short-circuits on failure."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    failures: List[Dict[str, Any]] = field(default_factory=list)
    results: List[TaskResult] = field(default_factory=list)

    def add(self, result: TaskResult) -> None:
        self.total += 1
        self.results.append(result)
        if result.success:
            self.succeeded += 1
        else:
            self.failed += 1
            self.failures.append({"item_id": result.item_id, "error": result.error})

    def to_dict(self, include_results: bool = True) -> Dict[str, Any]:
        summary: Dict[str, Any] = {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "failures": list(self.failures),
        }
        if include_results:
            summary["results"] = [r.to_dict() for r in self.results]
        return summary

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "BatchSummary":
        """Rebuild the counts of a summary produced by ``to_dict``; results are not kept."""
        if not data:
            return cls()
        return cls(
            total=int(data.get("total", 0)),
            succeeded=int(data.get("succeeded", 0)),
            failed=int(data.get("failed", 0)),
            failures=list(data.get("failures") or []),
        )


@dataclass
class BatchProgress:
    """Externally observable progress of an orchestrator run.

    ``completed`` counts finished items whatever their outcome; ``failed`` is
    the subset that failed.
    """

    status: str = "pending"  # pending | running | completed | failed
    total: int = 0
    completed: int = 0
    failed: int = 0
    current_batch: int = 0
    total_batches: int = 0

    def start(self, total: int, total_batches: int) -> None:
        self.status = "running"
        self.total = total
        self.total_batches = total_batches
        self.completed = 0
        self.failed = 0
        self.current_batch = 0

    def record(self, result: TaskResult) -> None:
        self.completed += 1
        if not result.success:
            self.failed += 1

    def fail(self) -> None:
        self.status = "failed"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


Worker = Callable[[T], Awaitable[Any]]
BatchCallback = Callable[[int, List[TaskResult]], Any]
ContinueCheck = Callable[[int], bool]


def _default_item_key(item: Any) -> Optional[str]:
    if isinstance(item, dict):
        return item.get("id")
    return None if item is None else str(item)


async def run_in_batches(
    items: Sequence[T],
    batch_size: int,
    worker: Worker,
    progress: Optional[BatchProgress] = None,
    on_batch_complete: Optional[BatchCallback] = None,
    item_key: Callable[[T], Optional[str]] = _default_item_key,
    summary: Optional[BatchSummary] = None,
    should_continue: Optional[ContinueCheck] = None,
) -> BatchSummary:
    """Run ``worker`` once per item, batch by batch.

    Args:
        items: Work items (ids or small dicts)
        batch_size: Maximum items dispatched concurrently
        worker: Coroutine function handling one item. May return a
            ``TaskResult``, an activity-style ``{"success": ...}`` dict, or raise.
        progress: Optional progress record updated after every item
        on_batch_complete: Optional callback (sync or async) receiving the
            1-based batch number and that batch's results
        item_key: Extracts the id recorded on each result
        summary: Counts carried over from earlier runs over the same work;
            new results are added to it and progress starts from its totals
        should_continue: Called with the number of batches finished in this
            call before every further batch; returning False stops early and
            leaves ``progress.status`` at ``running``. Items past the first
            ``summary.total`` minus the carried total were not dispatched

    Returns:
        BatchSummary: Aggregate counts and per-item results
    """
    batches = chunked(items, batch_size)
    if summary is None:
        summary = BatchSummary()
    # Earlier runs only stop between full batches
    done_batches = -(-summary.total // batch_size)
    if progress is not None:
        progress.start(total=summary.total + len(items), total_batches=done_batches + len(batches))
        progress.completed = summary.total
        progress.failed = summary.failed

    async def _run_one(item: T) -> TaskResult:
        key = item_key(item)
        try:
            outcome = await worker(item)
            if isinstance(outcome, TaskResult):
                result = outcome
                if result.item_id is None:
                    result.item_id = key
            else:
                result = TaskResult.from_payload(outcome, item_id=key)
        except Exception as e:
            result = TaskResult.failure(key, str(e) or e.__class__.__name__)

        summary.add(result)
        if progress is not None:
            progress.record(result)
        return result

    for index, batch in enumerate(batches):
        if index and should_continue is not None and not should_continue(index):
            return summary
        number = done_batches + index + 1
        if progress is not None:
            progress.current_batch = number
        batch_results = await asyncio.gather(*(_run_one(item) for item in batch))
        if on_batch_complete is not None:
            callback_result = on_batch_complete(number, list(batch_results))
            if inspect.isawaitable(callback_result):
                await callback_result

    if progress is not None:
        progress.status = "completed"
    return summary
