"""LTI launch → OIDC login bridge."""
