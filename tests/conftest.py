"""
pytest configuration for bullhorn_auth tests.

Adds src directory to Python path for imports and provides shared fixtures.
"""

import os
import sys
from pathlib import Path

import aiohttp
import pytest

# Add src and tests directories to Python path
tests_dir = Path(__file__).parent
sys.path.insert(0, str(tests_dir.parent / "src"))
sys.path.insert(0, str(tests_dir))

from bullhorn_auth.schemas import Credentials  # noqa: E402
from helpers import FakeHttp, script_login_flow  # noqa: E402


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(
        username="api.user",
        password="s3cret-pass",
        client_id="client-1",
        client_secret="client-secret-1",
    )


@pytest.fixture
def fake_http() -> FakeHttp:
    return FakeHttp()


@pytest.fixture
def login_http() -> FakeHttp:
    """FakeHttp scripted with one successful login flow."""
    return script_login_flow(FakeHttp())


@pytest.fixture
def owned_sessions(monkeypatch):
    """
    Sessions created by clients that own their HTTP session.

    aiohttp.ClientSession is replaced by a factory returning a FakeHttp
    scripted with one successful login flow, recorded in creation order.
    """
    created = []

    def factory(*args, **kwargs):
        http = script_login_flow(FakeHttp())
        created.append(http)
        return http

    monkeypatch.setattr(aiohttp, "ClientSession", factory)
    return created


@pytest.fixture(autouse=True)
def clear_bullhorn_env(monkeypatch):
    """Keep developer BULLHORN_* variables out of the tests."""
    for key in list(os.environ):
        if key.startswith("BULLHORN_"):
            monkeypatch.delenv(key, raising=False)
