"""Shared pytest fixtures."""
import os

import pytest

from usagescope.config import reset_config


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Run every test without USAGESCOPE_* variables and with a fresh config."""
    for key in list(os.environ):
        if key.startswith('USAGESCOPE_'):
            monkeypatch.delenv(key)
    reset_config()
    yield
    # .env files loaded during the test write straight into os.environ
    for key in list(os.environ):
        if key.startswith('USAGESCOPE_'):
            os.environ.pop(key)
    reset_config()
