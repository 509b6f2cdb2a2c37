"""
Callback validation: reconcile the provider-echoed `state` with the signed cookie.

NO_ATTEMPT_IN_FLIGHT -> ATTEMPT_PENDING -> {VALIDATED, REJECTED}

Terminal outcomes never retry. Every outcome asks for the state cookie to be deleted:
the signature stays valid until expiry, so consuming the cookie on first use is what
stops a cookie+state pair from being replayed inside the TTL window.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ltibridge.auth.errors import AuthFailure, RejectReason
from ltibridge.auth.launch_state import decode_launch_state
from ltibridge.auth.state_token import StateTokenCodec

logger = logging.getLogger(__name__)


class CallbackState(str, Enum):
    NO_ATTEMPT_IN_FLIGHT = "no_attempt_in_flight"
    ATTEMPT_PENDING = "attempt_pending"
    VALIDATED = "validated"
    REJECTED = "rejected"


@dataclass(frozen=True)
class CallbackOutcome:
    state: CallbackState
    reason: Optional[RejectReason] = None
    launch_context: Optional[str] = None
    nonce: Optional[str] = None
    # Always True; the route must emit the deletion cookie on every outcome.
    clear_cookie: bool = True

    @property
    def ok(self) -> bool:
        return self.state is CallbackState.VALIDATED


def _rejected(reason: RejectReason, detail: str = "") -> CallbackOutcome:
    logger.warning("OIDC callback rejected: reason=%s %s", reason.value, detail)
    return CallbackOutcome(state=CallbackState.REJECTED, reason=reason)


def validate_callback(
    codec: StateTokenCodec,
    *,
    cookie_value: Optional[str],
    raw_state: Optional[str],
) -> CallbackOutcome:
    if not cookie_value:
        # NO_ATTEMPT_IN_FLIGHT: nothing to reconcile against.
        return _rejected(RejectReason.MISSING_COOKIE)

    # ATTEMPT_PENDING
    verified = codec.verify(cookie_value)
    if isinstance(verified, AuthFailure):
        return _rejected(verified.reason, verified.detail)

    decoded = decode_launch_state(raw_state)
    if isinstance(decoded, AuthFailure):
        return _rejected(RejectReason.MALFORMED_STATE, decoded.detail)

    # Exact equality, no early exit.
    if not hmac.compare_digest(decoded.csrf_token.encode("utf-8"), verified.csrf.encode("utf-8")):
        return _rejected(RejectReason.CSRF_MISMATCH)

    logger.info("OIDC callback state validated")
    return CallbackOutcome(
        state=CallbackState.VALIDATED,
        launch_context=decoded.launch_context,
        nonce=verified.nonce,
    )
