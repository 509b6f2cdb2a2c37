from __future__ import annotations

from urllib.parse import urlparse

import pytest
from fastapi.testclient import TestClient

from ltibridge.api.app import create_app
from ltibridge.auth.errors import ConfigurationError
from ltibridge.auth.gate import GateAction, decide
from ltibridge.auth.models import BridgeUser
from ltibridge.auth.session import encode_session, session_cookie_name


@pytest.mark.parametrize(
    "session_present,launch_context,expected",
    [
        (True, "XYZ123", GateAction.PASS_THROUGH),
        (True, None, GateAction.PASS_THROUGH),
        (True, "", GateAction.PASS_THROUGH),
        (False, "XYZ123", GateAction.INITIATE_LOGIN),
        (False, None, GateAction.DENY),
        (False, "", GateAction.DENY),
    ],
)
def test_decision_table(session_present, launch_context, expected) -> None:  # type: ignore[no-untyped-def]
    assert decide(session_present, launch_context) is expected


def _cookie_attrs(header: str) -> list:
    return [part.strip().lower() for part in header.split(";")[1:]]


def _client(cfg) -> TestClient:  # type: ignore[no-untyped-def]
    return TestClient(create_app(cfg))


def _login(c: TestClient, cfg) -> None:  # type: ignore[no-untyped-def]
    value = encode_session(cfg, BridgeUser(provider="logto", sub="user-1", launch_context="CTX"))
    c.cookies.set(session_cookie_name(cfg), value)


def test_no_session_no_launch_context_is_denied(bridge_config) -> None:  # type: ignore[no-untyped-def]
    c = _client(bridge_config)
    for path in ("/", "/api/auth/me", "/anything"):
        r = c.get(path, follow_redirects=False)
        assert r.status_code == 302
        assert r.headers["location"] == "/lti-required"
        assert "idp.example.com" not in r.headers["location"]


def test_denial_destination_is_reachable(bridge_config) -> None:  # type: ignore[no-untyped-def]
    r = _client(bridge_config).get("/")
    assert r.status_code == 403
    assert r.json()["ok"] is False


def test_no_session_with_launch_context_redirects_to_provider(bridge_config) -> None:  # type: ignore[no-untyped-def]
    r = _client(bridge_config).get("/?lti_state=XYZ123", follow_redirects=False)

    assert r.status_code == 302
    loc = urlparse(r.headers["location"])
    assert f"{loc.scheme}://{loc.netloc}{loc.path}" == "https://idp.example.com/oidc/auth"
    assert r.headers["cache-control"] == "no-store"
    set_cookie = r.headers["set-cookie"]
    assert set_cookie.startswith("ltibridge_oidc_state=")
    attrs = _cookie_attrs(set_cookie)
    assert "httponly" in attrs
    assert "samesite=lax" in attrs
    assert "path=/" in attrs
    assert "max-age=600" in attrs
    assert "secure" not in attrs


def test_secure_cookie_when_configured(bridge_config) -> None:  # type: ignore[no-untyped-def]
    from dataclasses import replace

    r = _client(replace(bridge_config, cookie_secure=True)).get("/?lti_state=XYZ123", follow_redirects=False)
    assert "secure" in _cookie_attrs(r.headers["set-cookie"])


def test_session_passes_through_regardless_of_launch_context(bridge_config) -> None:  # type: ignore[no-untyped-def]
    c = _client(bridge_config)
    _login(c, bridge_config)

    for path in ("/", "/?lti_state=NEW"):
        r = c.get(path, follow_redirects=False)
        assert r.status_code == 200
        assert r.json()["launchContext"] == "CTX"

    me = c.get("/api/auth/me").json()
    assert me["user"]["sub"] == "user-1"
    assert me["launchContext"] == "CTX"


def test_session_with_leftover_state_cookie_clears_it(bridge_config) -> None:  # type: ignore[no-untyped-def]
    c = _client(bridge_config)
    _login(c, bridge_config)
    c.cookies.set(bridge_config.state_cookie_name, "stale-token")

    r = c.get("/", follow_redirects=False)

    assert r.status_code == 200
    cleared = [h for h in r.headers.get_list("set-cookie") if h.startswith(f"{bridge_config.state_cookie_name}=")]
    assert cleared and "max-age=0" in cleared[0].lower()


def test_tampered_session_cookie_counts_as_no_session(bridge_config) -> None:  # type: ignore[no-untyped-def]
    c = _client(bridge_config)
    c.cookies.set(session_cookie_name(bridge_config), "forged.value.sig")
    r = c.get("/", follow_redirects=False)
    assert r.headers["location"] == "/lti-required"


def test_public_paths_skip_the_gate(bridge_config) -> None:  # type: ignore[no-untyped-def]
    c = _client(bridge_config)
    assert c.get("/healthz").json() == {"ok": True}
    mode = c.get("/api/auth/mode").json()
    assert mode["provider"] == "logto"
    assert mode["configured"] is True


def test_logout_clears_session(bridge_config) -> None:  # type: ignore[no-untyped-def]
    c = _client(bridge_config)
    r = c.post("/api/auth/logout")
    assert r.status_code == 200
    assert "max-age=0" in r.headers.get("set-cookie", "").lower()


def test_app_refuses_to_start_without_provider_identifiers(bridge_config) -> None:  # type: ignore[no-untyped-def]
    from dataclasses import replace

    with pytest.raises(ConfigurationError):
        create_app(replace(bridge_config, client_id=None))


def test_state_cookie_is_secure_over_https(bridge_config) -> None:  # type: ignore[no-untyped-def]
    from dataclasses import replace

    app = create_app(replace(bridge_config, cookie_secure=False))
    r = TestClient(app, base_url="https://testserver").get("/?lti_state=XYZ123", follow_redirects=False)

    assert r.status_code == 302
    assert "secure" in _cookie_attrs(r.headers["set-cookie"])
