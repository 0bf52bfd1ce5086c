"""Integration worker activities: cloud scans, connection checks and employee sync.

Each worker activity handles one connection. It re-reads the connection
before doing anything (it may have been disconnected since the orchestrator
listed it), and reports business failures as ``{"success": False, ...}``
instead of raising. Database and unexpected errors propagate so Temporal can
retry them.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from temporalio import activity

from compliance_jobs.core.database import async_session_maker
from compliance_jobs.core.exceptions import APIClientError, AppError
from compliance_jobs.database.models import IntegrationCheckRun
from compliance_jobs.repositories.check_run_repository import CheckRunRepository
from compliance_jobs.repositories.connection_repository import ConnectionRepository
from compliance_jobs.repositories.organization_repository import OrganizationRepository
from compliance_jobs.services.batching import TaskResult
from compliance_jobs.services.error_sanitizer import ErrorSanitizer, redact_secrets, sanitize_error
from compliance_jobs.services.manifests import (
    CLOUD_SECURITY,
    SYNC,
    ProviderManifest,
    get_manifest,
    missing_required_variables,
    supports,
)
from compliance_jobs.services.platform_api import PlatformAPIClient
from compliance_jobs.temporal.core.activity_registry import ActivityRegistry
from compliance_jobs.utils.logging import get_logger

LOGGER = get_logger(__name__)

CONNECTION_INACTIVE = "Connection not found or inactive"
TOKEN_EXPIRED = "OAuth token expired. Please reconnect the integration."


def _validate_credentials(manifest: ProviderManifest, credentials: Dict[str, str]) -> Optional[str]:
    """Return an error message when the credentials cannot be used for this auth type."""
    if manifest.auth_type == "oauth2" and not credentials.get("access_token"):
        return "No OAuth access token found"
    if manifest.auth_type in ("custom", "api_key") and not credentials:
        return "No credentials found"
    return None


async def _fail_open_run(runs: CheckRunRepository, check_run: Optional[IntegrationCheckRun], error: Exception) -> str:
    """Mark a still running check run failed and return the sanitized error."""
    if isinstance(error, SQLAlchemyError):
        await runs.rollback([check_run] if check_run is not None else [])
    message = await ErrorSanitizer().sanitize(sanitize_error(error))
    if check_run is not None:
        await runs.fail_run(check_run, message)
    return message


@ActivityRegistry.register("integrations", "list_cloud_scan_targets")
@activity.defn
async def list_cloud_scan_targets() -> List[Dict[str, str]]:
    """Active connections whose provider supports cloud security scanning."""
    async with async_session_maker() as session:
        connections = await ConnectionRepository(session).list_active_with_providers()

    targets = [
        {
            "connection_id": connection.id,
            "organization_id": connection.organization_id,
            "provider_slug": connection.provider.slug,
        }
        for connection in connections
        if supports(connection.provider.slug, CLOUD_SECURITY)
    ]
    LOGGER.info(f"Found {len(targets)} cloud security scan targets")
    return targets


@ActivityRegistry.register("integrations", "run_cloud_security_scan")
@activity.defn
async def run_cloud_security_scan(connection_id: str, organization_id: str) -> Dict[str, Any]:
    """Run one cloud security scan for a connection."""
    async with async_session_maker() as session:
        connections = ConnectionRepository(session)
        connection = await connections.get_active(connection_id, organization_id)
        if connection is None:
            LOGGER.warning(f"Skipping scan, connection inactive: {connection_id}")
            return TaskResult.failure(connection_id, CONNECTION_INACTIVE).to_dict()

        try:
            report = await PlatformAPIClient().run_cloud_security_scan(connection_id, organization_id)
        except AppError as e:
            LOGGER.error(f"Cloud security scan failed for {connection_id}: {e.message}")
            return TaskResult.failure(connection_id, sanitize_error(e)).to_dict()

        if report.get("success") is False:
            message = redact_secrets(str(report.get("error") or "Cloud security scan failed"))
            LOGGER.error(f"Cloud security scan failed for {connection_id}: {message}")
            return TaskResult.failure(connection_id, message, provider=connection.provider.slug).to_dict()

        await connections.mark_synced(connection_id)

    return TaskResult.ok(
        connection_id,
        findings_count=len(report.get("findings") or []),
        provider=connection.provider.slug,
    ).to_dict()


@ActivityRegistry.register("integrations", "run_connection_checks")
@activity.defn
async def run_connection_checks(connection_id: str, organization_id: str, provider_slug: str) -> Dict[str, Any]:
    """Run all checks for a freshly established connection."""
    LOGGER.info(
        f"Auto-running checks for connection {connection_id}",
        extra={"provider": provider_slug, "organization_id": organization_id},
    )
    manifest = get_manifest(provider_slug)
    if manifest is None:
        return TaskResult.failure(connection_id, f"Manifest not found: {provider_slug}").to_dict()
    if not manifest.checks:
        LOGGER.info(f"No checks defined for provider: {provider_slug}")
        return {"success": True, "item_id": connection_id, "reason": "No checks defined"}

    async with async_session_maker() as session:
        connections = ConnectionRepository(session)
        connection = await connections.get_active(connection_id, organization_id)
        if connection is None:
            return TaskResult.failure(connection_id, CONNECTION_INACTIVE).to_dict()

        missing = missing_required_variables(manifest, connection.variables)
        if missing:
            LOGGER.info(f"Skipping auto-run, missing required variables: {', '.join(missing)}")
            return {"success": True, "item_id": connection_id, "reason": f"Missing required variables: {', '.join(missing)}"}

        platform = PlatformAPIClient()
        try:
            credentials = await platform.ensure_valid_credentials(connection_id, organization_id)
        except AppError as e:
            LOGGER.error(f"Failed to ensure valid credentials for {connection_id}: {e.message}")
            return TaskResult.failure(connection_id, sanitize_error(e)).to_dict()

        credential_error = _validate_credentials(manifest, credentials)
        if credential_error:
            return TaskResult.failure(connection_id, credential_error).to_dict()

        runs = CheckRunRepository(session)
        check_run = await runs.start_run(connection_id)
        try:
            report = await platform.run_checks(connection_id, organization_id)
            await runs.add_results(check_run.id, report.stored_results())
            await runs.complete_run(
                check_run,
                total_checked=len(report.results),
                passed_count=report.total_passing,
                failed_count=report.total_findings,
            )
        except Exception as e:
            message = await _fail_open_run(runs, check_run, e)
            LOGGER.error(f"Check execution failed for {connection_id}: {message}")
            if not isinstance(e, AppError):
                raise
            return TaskResult.failure(connection_id, message).to_dict()

        await connections.mark_synced(connection_id)

    LOGGER.info(f"Checks completed: {report.total_findings} findings, {report.total_passing} passing")
    return TaskResult.ok(
        connection_id,
        check_run_id=check_run.id,
        total_passing=report.total_passing,
        total_findings=report.total_findings,
    ).to_dict()


@ActivityRegistry.register("integrations", "run_task_integration_checks")
@activity.defn
async def run_task_integration_checks(
    task_id: str,
    connection_id: str,
    provider_slug: str,
    organization_id: str,
    check_ids: List[str],
) -> Dict[str, Any]:
    """Run the checks linked to one compliance task, one check run per check."""
    manifest = get_manifest(provider_slug)
    if manifest is None:
        return TaskResult.failure(task_id, f"Manifest not found: {provider_slug}").to_dict()

    wanted = set(check_ids)
    checks = [check for check in manifest.checks if check.id in wanted]
    if not checks:
        return {"success": True, "item_id": task_id, "reason": "No matching checks for task"}

    async with async_session_maker() as session:
        connections = ConnectionRepository(session)
        connection = await connections.get_active(connection_id, organization_id)
        if connection is None:
            return TaskResult.failure(task_id, CONNECTION_INACTIVE).to_dict()

        missing = missing_required_variables(manifest.model_copy(update={"checks": checks}), connection.variables)
        if missing:
            return {"success": True, "item_id": task_id, "reason": f"Missing required variables: {', '.join(missing)}"}

        platform = PlatformAPIClient()
        try:
            credentials = await platform.ensure_valid_credentials(connection_id, organization_id)
        except APIClientError as e:
            if e.status_code == 401:
                await connections.mark_error(connection_id, TOKEN_EXPIRED)
                return TaskResult.failure(task_id, TOKEN_EXPIRED).to_dict()
            return TaskResult.failure(task_id, sanitize_error(e)).to_dict()

        credential_error = _validate_credentials(manifest, credentials)
        if credential_error:
            return TaskResult.failure(task_id, credential_error).to_dict()

        runs = CheckRunRepository(session)
        check_runs: List[IntegrationCheckRun] = []
        open_run: Optional[IntegrationCheckRun] = None
        total_passing = 0
        total_findings = 0
        try:
            for check in checks:
                open_run = await runs.start_run(connection_id, check.id, check.name, task_id=task_id)
                check_runs.append(open_run)
                report = await platform.run_checks(connection_id, organization_id, check_id=check.id)
                outcome = next((r for r in report.results if r.check_id == check.id), None)
                if outcome is None:
                    await runs.fail_run(open_run, "Check returned no result")
                    open_run = None
                    continue

                single = report.model_copy(update={"results": [outcome]})
                await runs.add_results(open_run.id, single.stored_results())
                await runs.complete_run(
                    open_run,
                    total_checked=1,
                    passed_count=len(outcome.passing_results),
                    failed_count=len(outcome.findings),
                )
                open_run = None
                total_passing += len(outcome.passing_results)
                total_findings += len(outcome.findings)
            await connections.mark_synced(connection_id)
        except Exception as e:
            message = await _fail_open_run(runs, open_run, e)
            LOGGER.error(f"Task check execution failed for {task_id}: {message}")
            if not isinstance(e, AppError):
                raise
            return TaskResult.failure(task_id, message).to_dict()

    return TaskResult.ok(
        task_id,
        check_run_ids=[run.id for run in check_runs],
        total_passing=total_passing,
        total_findings=total_findings,
    ).to_dict()


@ActivityRegistry.register("integrations", "list_employee_sync_targets")
@activity.defn
async def list_employee_sync_targets() -> List[Dict[str, str]]:
    """Active sync-capable connections matching each organization's selected provider."""
    targets: List[Dict[str, str]] = []
    async with async_session_maker() as session:
        organizations = await OrganizationRepository(session).list_with_sync_provider()
        connections = ConnectionRepository(session)
        for organization in organizations:
            slug = organization.employee_sync_provider
            connection = await connections.find_active_for_provider(organization.id, slug)
            if connection is None:
                LOGGER.warning(
                    f"Organization {organization.name} has sync provider {slug} but no active connection"
                )
                continue
            if not supports(slug, SYNC):
                LOGGER.warning(f"Provider {slug} does not support employee sync")
                continue
            targets.append(
                {
                    "connection_id": connection.id,
                    "organization_id": organization.id,
                    "organization_name": organization.name,
                    "provider_slug": slug,
                }
            )

    LOGGER.info(f"Found {len(targets)} organizations with valid sync connections")
    return targets


@ActivityRegistry.register("integrations", "sync_employees_for_connection")
@activity.defn
async def sync_employees_for_connection(connection_id: str, organization_id: str, provider_slug: str) -> Dict[str, Any]:
    async with async_session_maker() as session:
        connections = ConnectionRepository(session)
        if await connections.get_active(connection_id, organization_id) is None:
            return TaskResult.failure(connection_id, CONNECTION_INACTIVE, provider_slug=provider_slug).to_dict()

        try:
            result = await PlatformAPIClient().sync_employees(provider_slug, connection_id, organization_id)
        except AppError as e:
            LOGGER.error(f"Sync failed for {provider_slug}", extra={"connection_id": connection_id, "error": e.message})
            return TaskResult.failure(connection_id, sanitize_error(e), provider_slug=provider_slug).to_dict()

        await connections.mark_synced(connection_id)

    LOGGER.info(
        f"Sync completed for {provider_slug}",
        extra={"connection_id": connection_id, "imported": result.imported, "deactivated": result.deactivated},
    )
    return TaskResult.ok(
        connection_id,
        provider_slug=provider_slug,
        organization_id=organization_id,
        imported=result.imported,
        reactivated=result.reactivated,
        deactivated=result.deactivated,
        skipped=result.skipped,
    ).to_dict()
