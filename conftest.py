"""Pytest configuration for Storefront Admin."""

import pytest

from storefront_admin.config import set_config


def pytest_configure(config):
    """Configure pytest with custom settings."""
    config.addinivalue_line("markers", "lifecycle: trash lifecycle test")
    config.addinivalue_line("markers", "sql: test runs against in-memory SQLite")


@pytest.fixture(autouse=True)
def reset_config():
    """Every test starts from the environment defaults."""
    set_config(None)
    yield
    set_config(None)
