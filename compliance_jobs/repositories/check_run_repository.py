from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from compliance_jobs.database.models import IntegrationCheckResult, IntegrationCheckRun
from compliance_jobs.repositories.base_repository import BaseRepository


def _duration_ms(started_at: Optional[datetime], finished_at: datetime) -> int:
    if started_at is None:
        return 0
    if started_at.tzinfo is None:
        started_at = started_at.replace(tzinfo=timezone.utc)
    return int((finished_at - started_at).total_seconds() * 1000)


class CheckRunRepository(BaseRepository[IntegrationCheckRun]):
    """Repository for check run records and their stored results."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, IntegrationCheckRun)

    async def start_run(
        self,
        connection_id: str,
        check_id: str = "all",
        check_name: str = "All Checks (Auto)",
        task_id: Optional[str] = None,
    ) -> IntegrationCheckRun:
        """Create a check run in ``running`` state."""
        return await self.create(
            connection_id=connection_id,
            check_id=check_id,
            check_name=check_name,
            task_id=task_id,
            status="running",
            started_at=datetime.now(timezone.utc),
        )

    async def complete_run(
        self,
        run: IntegrationCheckRun,
        total_checked: int,
        passed_count: int,
        failed_count: int,
    ) -> IntegrationCheckRun:
        """Finish a run; any finding makes the run ``failed``."""
        finished_at = datetime.now(timezone.utc)
        run.status = "failed" if failed_count > 0 else "success"
        run.completed_at = finished_at
        run.duration_ms = _duration_ms(run.started_at, finished_at)
        run.total_checked = total_checked
        run.passed_count = passed_count
        run.failed_count = failed_count
        await self.session.commit()
        return run

    async def fail_run(self, run: IntegrationCheckRun, error_message: str) -> IntegrationCheckRun:
        finished_at = datetime.now(timezone.utc)
        run.status = "failed"
        run.completed_at = finished_at
        run.duration_ms = _duration_ms(run.started_at, finished_at)
        run.error_message = error_message
        await self.session.commit()
        return run

    async def add_results(self, run_id: str, results: List[Dict[str, Any]]) -> int:
        """Store findings and passing results for a run.

        Args:
            run_id: Check run the results belong to
            results: Result dicts with passed/title/description/resource_type/
                resource_id/severity/remediation/evidence keys

        Returns:
            Number of rows stored
        """
        if not results:
            return 0

        rows = [
            IntegrationCheckResult(
                check_run_id=run_id,
                passed=bool(item.get("passed")),
                title=item.get("title") or "Untitled",
                description=item.get("description") or "",
                resource_type=item.get("resource_type"),
                resource_id=item.get("resource_id"),
                severity=item.get("severity") or ("info" if item.get("passed") else None),
                remediation=None if item.get("passed") else item.get("remediation"),
                evidence=item.get("evidence") or {},
            )
            for item in results
        ]
        self.session.add_all(rows)
        await self.session.commit()
        return len(rows)

    async def rollback(self, runs: List[IntegrationCheckRun]) -> None:
        """Discard a failed transaction and reload the runs it expired."""
        await self.session.rollback()
        for run in runs:
            await self.session.refresh(run)
