from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

from ltibridge.auth.errors import ConfigurationError

PROVIDER_KINDS = ("auth0", "logto", "oidc")


@dataclass(frozen=True)
class BridgeConfig:
    # Identity provider
    provider: str  # auth0|logto|oidc
    provider_base_url: Optional[str]
    client_id: Optional[str]
    client_secret: Optional[str]
    scope: str
    audience: Optional[str]  # Auth0 API audience
    connection: Optional[str]  # Connection / social connector hint
    organization: Optional[str]  # Organization hint
    authorize_path: Optional[str]  # Generic OIDC override

    # Bridge
    public_base_url: Optional[str]  # Required: callback redirect_uri is built from it
    state_secret: Optional[str]  # Signs the short-lived state cookie
    session_secret: Optional[str]  # Signs the post-login session cookie
    state_ttl_seconds: int
    session_ttl_seconds: int
    cookie_secure: bool
    state_cookie_name: str

    # Fixed destinations
    error_path: str
    denied_path: str
    post_login_path: str

    @property
    def redirect_uri(self) -> str:
        return f"{(self.public_base_url or '').rstrip('/')}/api/auth/callback"

    @property
    def configured(self) -> bool:
        return bool(self.provider_base_url and self.client_id and self.public_base_url and self.state_secret)

    def validate(self) -> "BridgeConfig":
        """
        Startup invariants. Missing provider identifiers are not a per-request condition.
        """
        missing: List[str] = []
        if not self.provider_base_url:
            missing.append("OIDC_BASE_URL")
        if not self.client_id:
            missing.append("OIDC_CLIENT_ID")
        if not self.public_base_url:
            missing.append("BRIDGE_PUBLIC_BASE_URL")
        if not self.state_secret:
            missing.append("BRIDGE_STATE_SECRET")
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")
        if self.provider not in PROVIDER_KINDS:
            raise ConfigurationError(f"Unknown OIDC_PROVIDER {self.provider!r} (expected one of {PROVIDER_KINDS})")
        return self


def _env(name: str) -> Optional[str]:
    return (os.getenv(name, "") or "").strip() or None


def _env_seconds(name: str, default: int) -> int:
    raw = (os.getenv(name, "") or "").strip() or str(default)
    try:
        ttl = int(float(raw))
    except (ValueError, OverflowError) as e:
        raise ConfigurationError(f"{name} must be a number of seconds, got {raw!r}") from e
    if ttl <= 60:
        ttl = 60
    return ttl


def _path(name: str, default: str) -> str:
    p = _env(name) or default
    return p if p.startswith("/") else f"/{p}"


@lru_cache(maxsize=1)
def load_bridge_config() -> BridgeConfig:
    """
    Load bridge configuration from environment variables.

    Values are read once per process; call `load_bridge_config.cache_clear()` in tests.
    """
    public_base_url = _env("BRIDGE_PUBLIC_BASE_URL")
    cookie_secure_env = (os.getenv("BRIDGE_COOKIE_SECURE", "") or "").strip().lower()
    if cookie_secure_env in ("1", "true", "yes", "on"):
        cookie_secure = True
    elif cookie_secure_env in ("0", "false", "no", "off"):
        cookie_secure = False
    else:
        # Default: secure cookies when base URL is https; otherwise allow local dev.
        cookie_secure = True if (public_base_url or "").startswith("https://") else False

    state_secret = _env("BRIDGE_STATE_SECRET")

    return BridgeConfig(
        provider=(_env("OIDC_PROVIDER") or "oidc").lower(),
        provider_base_url=(_env("OIDC_BASE_URL") or "").rstrip("/") or None,
        client_id=_env("OIDC_CLIENT_ID"),
        client_secret=_env("OIDC_CLIENT_SECRET"),
        scope=_env("OIDC_SCOPE") or "openid profile email",
        audience=_env("OIDC_AUDIENCE"),
        connection=_env("OIDC_CONNECTION"),
        organization=_env("OIDC_ORGANIZATION"),
        authorize_path=_env("OIDC_AUTHORIZE_PATH"),
        public_base_url=(public_base_url or "").rstrip("/") or None,
        state_secret=state_secret,
        # Sessions fall back to the state secret; salts keep the two keys distinct.
        session_secret=_env("BRIDGE_SESSION_SECRET") or state_secret,
        state_ttl_seconds=_env_seconds("BRIDGE_STATE_TTL_SECONDS", 600),
        session_ttl_seconds=_env_seconds("BRIDGE_SESSION_TTL_SECONDS", 43200),
        cookie_secure=cookie_secure,
        state_cookie_name=_env("BRIDGE_STATE_COOKIE_NAME") or "ltibridge_oidc_state",
        error_path=_path("BRIDGE_ERROR_PATH", "/auth-error"),
        denied_path=_path("BRIDGE_DENIED_PATH", "/lti-required"),
        post_login_path=_path("BRIDGE_POST_LOGIN_PATH", "/"),
    )
