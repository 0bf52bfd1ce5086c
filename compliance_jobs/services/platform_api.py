"""Client for the main platform API.

Credential refresh, check execution, cloud scans and HR provider syncs live
behind the platform API; the jobs here only orchestrate those calls.
"""

from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from compliance_jobs.core.config import PlatformAPISettings, settings
from compliance_jobs.core.exceptions import APIClientError, SyncProviderError
from compliance_jobs.core.http_client import BaseAPIClient
from compliance_jobs.utils.logging import get_logger

LOGGER = get_logger(__name__)


class CheckFinding(BaseModel):
    """One finding or passing result as the checks endpoint reports it."""

    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    description: Optional[str] = None
    resource_type: Optional[str] = Field(default=None, alias="resourceType")
    resource_id: Optional[str] = Field(default=None, alias="resourceId")
    severity: Optional[str] = None
    remediation: Optional[str] = None
    evidence: Optional[Dict[str, Any]] = None


class CheckResultBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    findings: List[CheckFinding] = Field(default_factory=list)
    passing_results: List[CheckFinding] = Field(default_factory=list, alias="passingResults")


class CheckOutcome(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    check_id: str = Field(alias="checkId")
    check_name: Optional[str] = Field(default=None, alias="checkName")
    result: CheckResultBody = Field(default_factory=CheckResultBody)

    @property
    def findings(self) -> List[CheckFinding]:
        return self.result.findings

    @property
    def passing_results(self) -> List[CheckFinding]:
        return self.result.passing_results


class CheckRunReport(BaseModel):
    """Response of ``POST /v1/integrations/checks/connections/{id}/run``."""

    model_config = ConfigDict(populate_by_name=True)

    connection_id: Optional[str] = Field(default=None, alias="connectionId")
    provider_slug: Optional[str] = Field(default=None, alias="providerSlug")
    check_run_id: Optional[str] = Field(default=None, alias="checkRunId")
    results: List[CheckOutcome] = Field(default_factory=list)

    @property
    def total_findings(self) -> int:
        return sum(len(r.findings) for r in self.results)

    @property
    def total_passing(self) -> int:
        return sum(len(r.passing_results) for r in self.results)

    def stored_results(self) -> List[Dict[str, Any]]:
        """Flatten findings (failed) and passing results into storable rows."""
        rows: List[Dict[str, Any]] = []
        for outcome in self.results:
            for finding in outcome.findings:
                rows.append({**finding.model_dump(exclude_none=True), "passed": False})
            for passing in outcome.passing_results:
                rows.append(
                    {**passing.model_dump(exclude_none=True), "passed": True, "severity": "info", "remediation": None}
                )
        return rows


class SyncResult(BaseModel):
    success: bool = True
    imported: int = 0
    reactivated: int = 0
    deactivated: int = 0
    skipped: int = 0
    errors: int = 0


class PlatformAPIClient:
    """Typed wrapper over ``BaseAPIClient`` for platform endpoints."""

    def __init__(self, config: Optional[PlatformAPISettings] = None, client: Optional[BaseAPIClient] = None):
        self.config = config or settings.platform
        self.client = client or BaseAPIClient(
            base_url=self.config.base_url,
            api_key=self.config.service_token or None,
            timeout=self.config.http_timeout,
            max_retries=self.config.max_retries,
            retry_delay=self.config.retry_delay,
        )

    async def ensure_valid_credentials(self, connection_id: str, organization_id: str) -> Dict[str, str]:
        """Refresh (if needed) and return the connection's credentials.

        Raises:
            APIClientError: With ``status_code`` 401 when the provider token
                can no longer be refreshed
        """
        response = await self.client.call_api(
            f"/v1/integrations/connections/{connection_id}/ensure-valid-credentials",
            method="POST",
            params={"organizationId": organization_id},
        )
        return response.get("credentials") or {}

    async def run_checks(
        self,
        connection_id: str,
        organization_id: str,
        check_id: Optional[str] = None,
    ) -> CheckRunReport:
        """Run every check of the connection, or only ``check_id``."""
        payload: Dict[str, Any] = {"organizationId": organization_id}
        if check_id:
            payload["checkId"] = check_id
        response = await self.client.call_api(
            f"/v1/integrations/checks/connections/{connection_id}/run",
            method="POST",
            payload=payload,
        )
        return CheckRunReport.model_validate(response)

    async def run_cloud_security_scan(self, connection_id: str, organization_id: str) -> Dict[str, Any]:
        return await self.client.call_api(
            f"/v1/cloud-security/scan/{connection_id}",
            method="POST",
            params={"organizationId": organization_id},
        )

    async def _sync_provider(self, provider_slug: str, label: str, connection_id: str, organization_id: str) -> SyncResult:
        try:
            response = await self.client.call_api(
                f"/v1/integrations/sync/{provider_slug}/employees",
                method="POST",
                params={"organizationId": organization_id, "connectionId": connection_id},
            )
        except APIClientError as e:
            status = f"{e.status_code} - " if e.status_code else ""
            raise SyncProviderError(f"{label} sync failed: {status}{e.message}", original_error=e) from e
        return SyncResult.model_validate(response)

    async def sync_google_workspace(self, connection_id: str, organization_id: str) -> SyncResult:
        return await self._sync_provider("google-workspace", "Google Workspace", connection_id, organization_id)

    async def sync_rippling(self, connection_id: str, organization_id: str) -> SyncResult:
        return await self._sync_provider("rippling", "Rippling", connection_id, organization_id)

    async def sync_jumpcloud(self, connection_id: str, organization_id: str) -> SyncResult:
        return await self._sync_provider("jumpcloud", "JumpCloud", connection_id, organization_id)

    def sync_handler(self, provider_slug: str) -> Callable[[str, str], Any]:
        handlers = {
            "google-workspace": self.sync_google_workspace,
            "rippling": self.sync_rippling,
            "jumpcloud": self.sync_jumpcloud,
        }
        handler = handlers.get(provider_slug)
        if handler is None:
            raise SyncProviderError(f"No sync handler for provider: {provider_slug}")
        return handler

    async def sync_employees(self, provider_slug: str, connection_id: str, organization_id: str) -> SyncResult:
        """Dispatch to the provider-specific employee sync."""
        handler = self.sync_handler(provider_slug)
        LOGGER.info(
            f"Syncing {provider_slug} employees",
            extra={"connection_id": connection_id, "organization_id": organization_id},
        )
        return await handler(connection_id, organization_id)
