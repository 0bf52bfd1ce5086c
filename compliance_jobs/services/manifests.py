"""Provider capability descriptors.

A manifest tells the orchestrators which integrations take part in which job:
``cloud_security`` providers are picked up by the scan orchestrator, ``sync``
providers by the employee sync schedule, and the listed checks define the
variables a connection must configure before checks can run.
"""

from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field


class CheckVariable(BaseModel):
    id: str
    label: str = ""
    required: bool = False


class CheckDefinition(BaseModel):
    id: str
    name: str
    variables: List[CheckVariable] = Field(default_factory=list)


class ProviderManifest(BaseModel):
    slug: str
    name: str
    auth_type: str  # oauth2 | api_key | custom
    capabilities: List[str] = Field(default_factory=list)
    checks: List[CheckDefinition] = Field(default_factory=list)

    def required_variables(self) -> List[str]:
        """Required variable ids across all checks, first occurrence order."""
        seen: Dict[str, None] = {}
        for check in self.checks:
            for variable in check.variables:
                if variable.required:
                    seen.setdefault(variable.id, None)
        return list(seen)


CLOUD_SECURITY = "cloud_security"
SYNC = "sync"
CHECKS = "checks"

_MANIFESTS: Dict[str, ProviderManifest] = {
    manifest.slug: manifest
    for manifest in [
        ProviderManifest(
            slug="aws",
            name="Amazon Web Services",
            auth_type="custom",
            capabilities=[CLOUD_SECURITY, CHECKS],
            checks=[
                CheckDefinition(
                    id="aws-security-hub",
                    name="Security Hub findings",
                    variables=[CheckVariable(id="regions", label="Regions", required=True)],
                ),
                CheckDefinition(id="aws-iam-mfa", name="IAM users have MFA"),
            ],
        ),
        ProviderManifest(
            slug="gcp",
            name="Google Cloud",
            auth_type="oauth2",
            capabilities=[CLOUD_SECURITY, CHECKS],
            checks=[
                CheckDefinition(
                    id="gcp-security-command-center",
                    name="Security Command Center findings",
                    variables=[CheckVariable(id="organization_id", label="GCP organization", required=True)],
                ),
            ],
        ),
        ProviderManifest(
            slug="azure",
            name="Microsoft Azure",
            auth_type="custom",
            capabilities=[CLOUD_SECURITY, CHECKS],
            checks=[
                CheckDefinition(
                    id="azure-defender",
                    name="Defender for Cloud recommendations",
                    variables=[CheckVariable(id="subscription_id", label="Subscription", required=True)],
                ),
            ],
        ),
        ProviderManifest(
            slug="github",
            name="GitHub",
            auth_type="oauth2",
            capabilities=[CHECKS],
            checks=[
                CheckDefinition(id="github-mfa", name="Organization requires 2FA"),
                CheckDefinition(
                    id="github-branch-protection",
                    name="Default branch protection",
                    variables=[CheckVariable(id="repositories", label="Repositories", required=True)],
                ),
            ],
        ),
        ProviderManifest(
            slug="google-workspace",
            name="Google Workspace",
            auth_type="oauth2",
            capabilities=[SYNC, CHECKS],
            checks=[CheckDefinition(id="google-workspace-2sv", name="2-step verification enforced")],
        ),
        ProviderManifest(slug="rippling", name="Rippling", auth_type="oauth2", capabilities=[SYNC]),
        ProviderManifest(slug="jumpcloud", name="JumpCloud", auth_type="api_key", capabilities=[SYNC]),
    ]
}


def get_manifest(slug: str) -> Optional[ProviderManifest]:
    return _MANIFESTS.get(slug)


def list_manifests() -> List[ProviderManifest]:
    return list(_MANIFESTS.values())


def supports(slug: str, capability: str) -> bool:
    manifest = get_manifest(slug)
    return manifest is not None and capability in manifest.capabilities


def _is_missing(value: Any) -> bool:
    if value is None or value == "":
        return True
    return isinstance(value, (list, tuple)) and len(value) == 0


def missing_required_variables(manifest: ProviderManifest, configured: Optional[Mapping[str, Any]]) -> List[str]:
    """Required variables that are unset, empty strings or empty lists."""
    configured = configured or {}
    return [name for name in manifest.required_variables() if _is_missing(configured.get(name))]
