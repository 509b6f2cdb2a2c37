from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from fastapi import Request
from fastapi.responses import RedirectResponse

from ltibridge.auth.config import BridgeConfig
from ltibridge.auth.launch_state import encode_launch_state
from ltibridge.auth.oidc import ProviderAdapter, build_authorize_url
from ltibridge.auth.state_token import StateTokenCodec
from ltibridge.auth.util import random_token

logger = logging.getLogger(__name__)

LAUNCH_CONTEXT_PARAM = "lti_state"


class GateAction(str, Enum):
    PASS_THROUGH = "pass_through"
    INITIATE_LOGIN = "initiate_login"
    DENY = "deny"


def decide(session_present: bool, launch_context: Optional[str]) -> GateAction:
    """
    Per-request routing. Session presence always wins over launch handling.

    | session | lti_state | action          |
    |---------|-----------|-----------------|
    | yes     | any       | PASS_THROUGH    |
    | no      | yes       | INITIATE_LOGIN  |
    | no      | no        | DENY            |
    """
    if session_present:
        return GateAction.PASS_THROUGH
    if launch_context:
        return GateAction.INITIATE_LOGIN
    return GateAction.DENY


def cookie_secure_for(cfg: BridgeConfig, request: Request) -> bool:
    return bool(cfg.cookie_secure or request.url.scheme == "https")


def state_cookie_kwargs(cfg: BridgeConfig, *, value: str, secure: bool) -> dict:
    return {
        "key": cfg.state_cookie_name,
        "value": value,
        "max_age": cfg.state_ttl_seconds,
        "httponly": True,
        "secure": secure,
        "samesite": "lax",
        "path": "/",
    }


def clear_state_cookie_kwargs(cfg: BridgeConfig, *, secure: bool) -> dict:
    kwargs = state_cookie_kwargs(cfg, value="", secure=secure)
    kwargs["max_age"] = 0
    return kwargs


def initiate_login(
    cfg: BridgeConfig,
    provider: ProviderAdapter,
    codec: StateTokenCodec,
    launch_context: str,
    *,
    secure: bool,
) -> RedirectResponse:
    """
    Mint the CSRF value + nonce, sign them into the state cookie and redirect to the provider.

    The cookie is set on the redirect response itself.
    """
    csrf_token = random_token(32)
    nonce = random_token(32)

    signed = codec.create(csrf_token, nonce, ttl_seconds=cfg.state_ttl_seconds)
    state = encode_launch_state(csrf_token, launch_context)
    url = build_authorize_url(cfg, provider, state=state, nonce=nonce)

    logger.info("No session, launch context present: redirecting to %s authorize endpoint", provider.display_name)
    resp = RedirectResponse(url=url, status_code=302)
    resp.headers["Cache-Control"] = "no-store"
    resp.set_cookie(**state_cookie_kwargs(cfg, value=signed, secure=secure))
    return resp
