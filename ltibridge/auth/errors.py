from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# Shown to end users for every rejection; the specific reason only goes to logs.
GENERIC_LOGIN_ERROR = "Login could not be verified. Please relaunch from your LMS."


class ConfigurationError(ValueError):
    """Required provider/bridge settings are missing. Fatal at startup."""


class RejectReason(str, Enum):
    MISSING_COOKIE = "missing_cookie"
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"
    MALFORMED = "malformed"
    MALFORMED_STATE = "malformed_state"
    CSRF_MISMATCH = "csrf_mismatch"
    MISSING_LAUNCH_CONTEXT = "missing_launch_context"
    NONCE_MISMATCH = "nonce_mismatch"
    TOKEN_EXCHANGE_FAILED = "token_exchange_failed"


@dataclass(frozen=True)
class AuthFailure:
    """Typed failure returned (never raised) for untrusted input."""

    reason: RejectReason
    detail: str = ""


class TokenExchangeError(ValueError):
    """The provider adapter could not turn a code into validated claims."""

    def __init__(self, message: str, reason: RejectReason = RejectReason.TOKEN_EXCHANGE_FAILED):
        super().__init__(message)
        self.reason = reason
