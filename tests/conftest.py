"""Pytest configuration and shared fixtures."""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("ERROR_SANITIZER_LLM_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from compliance_jobs.main import app


@pytest.fixture
def test_client() -> TestClient:
    """FastAPI test client without running the lifespan handlers."""
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}
