"""Shared test fixtures."""

from __future__ import annotations

import pytest

from scrubgate.sanitize import SanitizeOptions, build_options


@pytest.fixture(autouse=True)
def _mock_settings(monkeypatch):
    """Provide default settings for all tests."""
    monkeypatch.setenv("PROXY_UPSTREAM_URL", "http://mock-upstream:3000")
    monkeypatch.setenv("PROXY_LOG_JSON", "false")
    monkeypatch.setenv("PROXY_LOG_LEVEL", "debug")

    # Reset cached settings
    import scrubgate.config.loader as loader
    loader._settings = None
    yield
    loader._settings = None


@pytest.fixture
def default_options() -> SanitizeOptions:
    return build_options()
