from compliance_jobs.services.manifests import (
    CLOUD_SECURITY,
    SYNC,
    get_manifest,
    list_manifests,
    missing_required_variables,
    supports,
)


def test_capabilities():
    assert supports("aws", CLOUD_SECURITY)
    assert supports("rippling", SYNC)
    assert not supports("github", CLOUD_SECURITY)
    assert not supports("unknown-provider", SYNC)


def test_slugs_are_unique():
    slugs = [m.slug for m in list_manifests()]
    assert len(slugs) == len(set(slugs))


def test_missing_required_variables_treats_empty_values_as_missing():
    manifest = get_manifest("github")

    assert missing_required_variables(manifest, None) == ["repositories"]
    assert missing_required_variables(manifest, {"repositories": []}) == ["repositories"]
    assert missing_required_variables(manifest, {"repositories": ""}) == ["repositories"]
    assert missing_required_variables(manifest, {"repositories": ["acme/api"]}) == []


def test_provider_without_required_variables():
    assert missing_required_variables(get_manifest("google-workspace"), {}) == []
