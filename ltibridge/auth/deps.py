from __future__ import annotations

from typing import Optional

from fastapi import Request

from ltibridge.auth.config import BridgeConfig
from ltibridge.auth.models import BridgeUser
from ltibridge.auth.session import decode_session, session_cookie_name


def authenticate_request(cfg: BridgeConfig, request: Request) -> Optional[BridgeUser]:
    """
    Return the session user if the request carries a valid session cookie.

    Invalid, expired or unsigned cookies count as no session (fail closed).
    """
    return decode_session(cfg, request.cookies.get(session_cookie_name(cfg)))
