"""Pytest configuration for scalebench."""

import pytest

# Prevent collection from source tree
collect_ignore = ["src"]

# Read by RosaCli when logging in; a developer's shell must not leak into tests
ROSA_ENV_VARS = ("ROSA_LOGIN_ENV", "ROSA_SSO_CLIENT_ID", "ROSA_SSO_CLIENT_SECRET", "ROSA_TOKEN")


def pytest_configure(config):
    """Register custom test markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no cluster or rosa CLI needed)")
    config.addinivalue_line(
        "markers", "integration: Integration tests (require an OpenShift cluster)"
    )


@pytest.fixture(autouse=True)
def _clean_rosa_env(monkeypatch):
    for name in ROSA_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
