from __future__ import annotations

import base64
import binascii
import secrets
import string

_TOKEN_ALPHABET = string.ascii_letters + string.digits + "_-"


def b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64url_decode(value: str) -> bytes:
    """Inverse of `b64url`; raises ValueError on invalid input."""
    s = (value or "").strip()
    padded = s + "=" * (-len(s) % 4)
    try:
        return base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True)
    except (UnicodeEncodeError, binascii.Error) as e:
        raise ValueError(f"Invalid base64url: {e}") from e


def random_token(length: int = 32) -> str:
    """
    URL-safe random token of exactly `length` characters.

    Used for both CSRF values and nonces so they share one entropy source.
    """
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(length))


def sanitize_next_path(next_path: str | None) -> str:
    """
    Prevent open-redirects: allow only relative paths like `/resource`.
    """
    p = (next_path or "").strip()
    if not p:
        return "/"
    if not p.startswith("/"):
        return "/"
    # Disallow scheme-relative: `//evil.com`
    if p.startswith("//"):
        return "/"
    p = p.replace("\r", "").replace("\n", "")
    return p or "/"
