"""Shared pytest fixtures for the Shop-Web-BFF test suite."""

import os

import pytest

# Settings are read at import time, so the environment must be ready first.
os.environ.setdefault("AUTH_API_BASE_URL", "http://auth-api.test/api")

from shop_web_bff.session import SESSION_LAST_SEEN, SESSION_STORE  # noqa: E402


@pytest.fixture(autouse=True)
def clear_sessions():
    """Start every test with an empty in-memory session store."""
    SESSION_STORE.clear()
    SESSION_LAST_SEEN.clear()
    yield
    SESSION_STORE.clear()
    SESSION_LAST_SEEN.clear()


@pytest.fixture()
def session():
    """A bare session dict, as the middleware would hand to a request."""
    return {}
