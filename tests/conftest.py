"""
Pytest config.

Tests import the local `ltibridge/` package; pin the repo root on sys.path so a global
`pytest` entrypoint works without an editable install.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Generator

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()


BRIDGE_ENV = {
    "OIDC_PROVIDER": "logto",
    "OIDC_BASE_URL": "https://idp.example.com",
    "OIDC_CLIENT_ID": "test-client-id",
    "OIDC_CLIENT_SECRET": "test-client-secret",
    "BRIDGE_PUBLIC_BASE_URL": "http://testserver",
    "BRIDGE_STATE_SECRET": "test-state-secret-for-testing-purposes-only",
    "BRIDGE_SESSION_SECRET": "test-session-secret-for-testing-purposes-only",
}


@pytest.fixture
def bridge_env(monkeypatch: pytest.MonkeyPatch) -> Generator[dict, None, None]:
    """
    Minimal valid bridge environment. The config loader is cached per process,
    so clear it before and after each test that touches the environment.
    """
    from ltibridge.auth.config import load_bridge_config

    for key in (
        "OIDC_SCOPE",
        "OIDC_AUDIENCE",
        "OIDC_CONNECTION",
        "OIDC_ORGANIZATION",
        "OIDC_AUTHORIZE_PATH",
        "BRIDGE_COOKIE_SECURE",
        "BRIDGE_STATE_TTL_SECONDS",
        "BRIDGE_SESSION_TTL_SECONDS",
        "BRIDGE_STATE_COOKIE_NAME",
        "BRIDGE_ERROR_PATH",
        "BRIDGE_DENIED_PATH",
        "BRIDGE_POST_LOGIN_PATH",
    ):
        monkeypatch.delenv(key, raising=False)
    for key, value in BRIDGE_ENV.items():
        monkeypatch.setenv(key, value)
    load_bridge_config.cache_clear()
    yield dict(BRIDGE_ENV)
    load_bridge_config.cache_clear()


@pytest.fixture
def bridge_config(bridge_env):  # type: ignore[no-untyped-def]
    from ltibridge.auth.config import load_bridge_config

    return load_bridge_config()
