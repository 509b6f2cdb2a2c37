from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import parse_qsl

from fastapi import Request

from ltibridge.auth.errors import AuthFailure, RejectReason
from ltibridge.auth.util import b64url, b64url_decode


@dataclass(frozen=True)
class LaunchState:
    """Provider-visible `state`: a CSRF marker paired with the opaque launch context."""

    csrf_token: str
    launch_context: str


def encode_launch_state(csrf_token: str, launch_context: str) -> str:
    # Not integrity protected; trust comes from matching csrfToken against the signed cookie.
    raw = json.dumps({"csrfToken": csrf_token, "launchContext": launch_context}, separators=(",", ":"))
    return b64url(raw.encode("utf-8"))


def decode_launch_state(state: Optional[str]) -> Union[LaunchState, AuthFailure]:
    if not state:
        return AuthFailure(RejectReason.MALFORMED_STATE, "state parameter missing")
    try:
        data = json.loads(b64url_decode(state).decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as e:
        return AuthFailure(RejectReason.MALFORMED_STATE, type(e).__name__)
    if not isinstance(data, dict):
        return AuthFailure(RejectReason.MALFORMED_STATE, "state is not an object")
    csrf_token = data.get("csrfToken")
    launch_context = data.get("launchContext")
    if not isinstance(csrf_token, str) or not csrf_token:
        return AuthFailure(RejectReason.MALFORMED_STATE, "csrfToken missing")
    if not isinstance(launch_context, str):
        return AuthFailure(RejectReason.MALFORMED_STATE, "launchContext missing")
    return LaunchState(csrf_token=csrf_token, launch_context=launch_context)


def raw_query_param(request: Request, name: str) -> Optional[str]:
    """
    Read a query parameter from the ASGI scope's query string.

    Standard form decoding applies (percent escapes, `+` as space), the same as
    `request.query_params`. Reading the scope directly keeps the value independent of
    any SDK or middleware that handles `state` on its own. Launch state values are
    base64url, so decoding never changes a well-formed one.
    """
    raw = request.scope.get("query_string") or b""
    for key, value in parse_qsl(raw.decode("utf-8", errors="replace"), keep_blank_values=True):
        if key == name:
            return value
    return None
