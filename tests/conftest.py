"""Shared pytest configuration and fixtures."""

import os

import pytest


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests needing a running Chroma server, S3 bucket or embedding API",
    )


@pytest.fixture(autouse=True)
def _isolate_settings_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep KB_* variables from the developer's shell out of Settings() in tests."""
    for name in list(os.environ):
        if name.startswith("KB_"):
            monkeypatch.delenv(name)
