"""Shared fixtures."""

import pytest

from nestwire.application.container import DIContainer
from nestwire.application.settings import get_settings


@pytest.fixture(autouse=True)
def reset_root_container():
    """Give every test a fresh root container and settings."""
    get_settings.cache_clear()
    yield
    DIContainer.reset_root()
    get_settings.cache_clear()
