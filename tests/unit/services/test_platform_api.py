import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from compliance_jobs.core.config import PlatformAPISettings
from compliance_jobs.core.exceptions import APIClientError, APITimeoutError, SyncProviderError
from compliance_jobs.core.http_client import BaseAPIClient
from compliance_jobs.services.platform_api import CheckRunReport, PlatformAPIClient

_RealAsyncClient = httpx.AsyncClient


def _transport_patch(handler):
    transport = httpx.MockTransport(handler)
    return patch.object(httpx, "AsyncClient", lambda **kwargs: _RealAsyncClient(transport=transport, **kwargs))


@pytest.fixture
def api_client():
    return BaseAPIClient(base_url="https://platform.test/", api_key="svc", max_retries=3, retry_delay=0)


@pytest.mark.asyncio
async def test_call_api_sends_bearer_token_and_params(api_client):
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        seen["url"] = str(request.url)
        return httpx.Response(200, json={"ok": True})

    with _transport_patch(handler):
        result = await api_client.call_api("/v1/things", params={"organizationId": "org_1"})

    assert result == {"ok": True}
    assert seen["auth"] == "Bearer svc"
    assert seen["url"] == "https://platform.test/v1/things?organizationId=org_1"


@pytest.mark.asyncio
async def test_client_error_is_not_retried_and_keeps_status(api_client):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(401, json={"message": "Token refresh failed"})

    with _transport_patch(handler):
        with pytest.raises(APIClientError) as exc_info:
            await api_client.call_api("/v1/creds")

    assert len(calls) == 1
    assert exc_info.value.status_code == 401
    assert exc_info.value.message == "Token refresh failed"


@pytest.mark.asyncio
async def test_server_error_is_retried_then_succeeds(api_client):
    responses = [httpx.Response(503), httpx.Response(429), httpx.Response(200, content=b"")]

    with _transport_patch(lambda request: responses.pop(0)):
        result = await api_client.call_api("/v1/scan")

    assert result == {}
    assert responses == []


@pytest.mark.asyncio
async def test_timeouts_raise_after_all_attempts(api_client):
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with _transport_patch(handler):
        with pytest.raises(APITimeoutError):
            await api_client.call_api("/v1/scan")


@pytest.fixture
def http():
    client = AsyncMock(spec=BaseAPIClient)
    return client


@pytest.fixture
def platform(http):
    return PlatformAPIClient(config=PlatformAPISettings(), client=http)


@pytest.mark.asyncio
async def test_ensure_valid_credentials_returns_credentials(platform, http):
    http.call_api.return_value = {"credentials": {"access_token": "t"}}

    credentials = await platform.ensure_valid_credentials("conn_1", "org_1")

    assert credentials == {"access_token": "t"}
    http.call_api.assert_awaited_once_with(
        "/v1/integrations/connections/conn_1/ensure-valid-credentials",
        method="POST",
        params={"organizationId": "org_1"},
    )


def _checks_response(*results):
    return {
        "connectionId": "conn_1",
        "providerSlug": "github",
        "checkRunId": "icr_remote",
        "results": list(results),
        "totalFindings": sum(len(r["result"]["findings"]) for r in results),
        "totalPassing": sum(len(r["result"]["passingResults"]) for r in results),
    }


@pytest.mark.asyncio
async def test_run_checks_parses_report(platform, http):
    http.call_api.return_value = _checks_response(
        {
            "checkId": "github-mfa",
            "checkName": "Two-factor authentication",
            "status": "failed",
            "result": {
                "findings": [{"title": "2FA not required", "severity": "high", "resourceType": "organization"}],
                "passingResults": [{"title": "Org members"}, {"title": "Owners"}],
                "logs": [],
            },
        }
    )

    report = await platform.run_checks("conn_1", "org_1", check_id="github-mfa")

    assert report.total_findings == 1
    assert report.total_passing == 2
    assert report.results[0].check_id == "github-mfa"
    assert report.results[0].check_name == "Two-factor authentication"
    assert report.check_run_id == "icr_remote"
    _, kwargs = http.call_api.call_args
    assert kwargs["payload"] == {"organizationId": "org_1", "checkId": "github-mfa"}


@pytest.mark.asyncio
async def test_run_all_checks_sends_no_check_id(platform, http):
    http.call_api.return_value = _checks_response()

    report = await platform.run_checks("conn_1", "org_1")

    assert report.results == []
    assert http.call_api.call_args.kwargs["payload"] == {"organizationId": "org_1"}


def test_stored_results_flag_passing_rows():
    report = CheckRunReport.model_validate(
        _checks_response(
            {
                "checkId": "c",
                "result": {
                    "findings": [{"title": "bad", "resourceType": "repo", "resourceId": "acme/api", "remediation": "fix"}],
                    "passingResults": [{"title": "good"}],
                },
            }
        )
    )

    rows = report.stored_results()

    assert rows[0] == {
        "title": "bad",
        "resource_type": "repo",
        "resource_id": "acme/api",
        "remediation": "fix",
        "passed": False,
    }
    assert rows[1] == {"title": "good", "passed": True, "severity": "info", "remediation": None}


@pytest.mark.asyncio
async def test_sync_employees_dispatches_by_provider(platform, http):
    http.call_api.return_value = {"success": True, "imported": 4, "deactivated": 1}

    result = await platform.sync_employees("rippling", "conn_1", "org_1")

    assert result.imported == 4
    assert result.deactivated == 1
    assert http.call_api.call_args.args[0] == "/v1/integrations/sync/rippling/employees"


@pytest.mark.asyncio
async def test_sync_employees_rejects_unknown_provider(platform):
    with pytest.raises(SyncProviderError, match="No sync handler for provider: okta"):
        await platform.sync_employees("okta", "conn_1", "org_1")


@pytest.mark.asyncio
async def test_sync_failure_is_wrapped_with_provider_label(platform, http):
    http.call_api.side_effect = APIClientError("Admin consent missing", status_code=403)

    with pytest.raises(SyncProviderError) as exc_info:
        await platform.sync_employees("google-workspace", "conn_1", "org_1")

    assert exc_info.value.message == "Google Workspace sync failed: 403 - Admin consent missing"
