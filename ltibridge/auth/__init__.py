"""
Launch-state protection for the OIDC login handshake.

Design goals:
- Provider-agnostic (Auth0, Logto, generic OIDC behind one adapter interface).
- Stateless: the only durable state is a signed, short-lived cookie in the browser.
- Fail closed: any doubt about the returning callback ends in denial.
"""
