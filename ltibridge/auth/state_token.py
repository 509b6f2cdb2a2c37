"""
Signed, time-limited state token stored in the login-attempt cookie.

The browser holds the only copy. Signing means a party that can write cookies but
does not know the secret cannot plant its own CSRF value or nonce.
"""

from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import jwt  # PyJWT

from ltibridge.auth.errors import AuthFailure, RejectReason

STATE_SALT = "ltibridge-oidc-state-v1"
DEFAULT_STATE_TTL_SECONDS = 10 * 60
_ALGORITHM = "HS256"


@dataclass(frozen=True)
class StatePayload:
    csrf: str
    nonce: Optional[str]
    issued_at: int
    expires_at: int


class StateTokenCodec:
    """Create and verify compact HS256 tokens carrying the CSRF value and nonce."""

    def __init__(self, secret: str, *, salt: str = STATE_SALT):
        if not secret:
            raise ValueError("State token secret must not be empty")
        # Derived once; instances are read-only afterwards and shared across requests.
        self._key = hashlib.sha256(f"{salt}:{secret}".encode("utf-8")).digest()

    def create(
        self,
        csrf: str,
        nonce: Optional[str] = None,
        *,
        ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS,
        now: Optional[float] = None,
    ) -> str:
        if not csrf:
            raise ValueError("csrf must not be empty")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        issued_at = int(time.time() if now is None else now)
        claims: Dict[str, Any] = {"csrf": csrf, "iat": issued_at, "exp": issued_at + int(ttl_seconds)}
        if nonce:
            claims["nonce"] = nonce
        return jwt.encode(claims, self._key, algorithm=_ALGORITHM)

    def verify(self, token: Optional[str]) -> Union[StatePayload, AuthFailure]:
        """
        Verify a token from the cookie. Never raises for untrusted input.
        """
        if not isinstance(token, str) or not token.strip():
            return AuthFailure(RejectReason.MALFORMED, "empty token")
        try:
            claims = jwt.decode(
                token.strip(),
                key=self._key,
                algorithms=[_ALGORITHM],
                options={"require": ["csrf", "iat", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            return AuthFailure(RejectReason.EXPIRED, "state token expired")
        except jwt.InvalidSignatureError:
            return AuthFailure(RejectReason.INVALID_SIGNATURE, "state token signature mismatch")
        except jwt.InvalidTokenError as e:
            return AuthFailure(RejectReason.MALFORMED, type(e).__name__)

        csrf = claims.get("csrf")
        nonce = claims.get("nonce")
        if not isinstance(csrf, str) or not csrf:
            return AuthFailure(RejectReason.MALFORMED, "csrf claim missing or not a string")
        if nonce is not None and not isinstance(nonce, str):
            return AuthFailure(RejectReason.MALFORMED, "nonce claim not a string")
        try:
            issued_at = int(claims["iat"])
            expires_at = int(claims["exp"])
        except (TypeError, ValueError):
            return AuthFailure(RejectReason.MALFORMED, "iat/exp not numeric")
        return StatePayload(csrf=csrf, nonce=nonce or None, issued_at=issued_at, expires_at=expires_at)
