"""
Post-login session cookie.

Written once by the callback after the code exchange succeeds; carries the user and the
launch context recovered from `state` so later requests pass the gate without a launch.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Optional

from itsdangerous import BadSignature, BadTimeSignature, URLSafeTimedSerializer

from ltibridge.auth.config import BridgeConfig
from ltibridge.auth.models import BridgeUser

SESSION_SALT = "ltibridge-session-v1"


def session_cookie_name(cfg: BridgeConfig) -> str:
    # `__Host-` requires Secure + Path=/ + no Domain.
    return "__Host-ltibridge_session" if cfg.cookie_secure else "ltibridge_session"


def encode_session(cfg: BridgeConfig, user: BridgeUser) -> Optional[str]:
    """Sign the user into a cookie value; None when no session secret is configured."""
    if not cfg.session_secret:
        return None
    # Identity and launch context only; provider tokens never leave the callback.
    payload = json.dumps(asdict(user), separators=(",", ":"), sort_keys=True)
    return URLSafeTimedSerializer(cfg.session_secret, salt=SESSION_SALT).dumps(payload)


def decode_session(cfg: BridgeConfig, value: str | None) -> Optional[BridgeUser]:
    if not value or not cfg.session_secret:
        return None
    try:
        raw = URLSafeTimedSerializer(cfg.session_secret, salt=SESSION_SALT).loads(
            value, max_age=cfg.session_ttl_seconds
        )
        data = json.loads(raw)
        if not isinstance(data, dict):
            return None
        sub = str(data.get("sub") or "").strip()
        if not sub:
            return None
        email = data.get("email")
        name = data.get("name")
        launch_context = data.get("launch_context")
        return BridgeUser(
            provider=str(data.get("provider") or "").strip() or cfg.provider,
            sub=sub,
            email=str(email) if email else None,
            name=str(name) if name else None,
            launch_context=str(launch_context) if launch_context is not None else None,
        )
    except (BadSignature, BadTimeSignature, ValueError):
        return None


def session_cookie_kwargs(cfg: BridgeConfig, value: str) -> dict:
    # Secure must agree with the `__Host-` name, so it follows config, not the request scheme.
    return {
        "key": session_cookie_name(cfg),
        "value": value,
        "max_age": cfg.session_ttl_seconds if value else 0,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }


def clear_session_cookie_kwargs(cfg: BridgeConfig) -> dict:
    return session_cookie_kwargs(cfg, "")
