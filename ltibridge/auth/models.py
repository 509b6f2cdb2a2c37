from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class BridgeUser:
    """User established after a validated launch + provider login."""

    provider: str  # auth0|logto|oidc
    sub: str
    email: Optional[str] = None
    name: Optional[str] = None
    launch_context: Optional[str] = None  # Recovered lti_state, passed through opaquely
