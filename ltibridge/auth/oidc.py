from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import jwt  # PyJWT
import requests

from ltibridge.auth.config import BridgeConfig
from ltibridge.auth.errors import ConfigurationError, RejectReason, TokenExchangeError

logger = logging.getLogger(__name__)

_discovery_cache: Dict[str, Tuple[float, Optional[Dict[str, Any]]]] = {}
_jwks_cache: Dict[str, Tuple[float, Optional[Dict[str, Any]]]] = {}

# Logto signs with EC keys by default; Auth0 and most others use RS256.
_ID_TOKEN_ALGORITHMS = ("RS256", "ES256", "ES384")


def _get_discovery(discovery_url: str) -> Dict[str, Any]:
    """
    Fetch OIDC discovery document from provider.
    Caches result for 1 hour per discovery URL.
    """
    ts, cached = _discovery_cache.get(discovery_url, (0.0, None))
    now = time.time()
    if cached is not None and now - ts < 3600:
        return cached
    r = requests.get(discovery_url, timeout=10)
    r.raise_for_status()
    data = r.json()
    if not isinstance(data, dict):
        raise TokenExchangeError("Invalid OIDC discovery document")
    _discovery_cache[discovery_url] = (now, data)
    logger.debug("Fetched OIDC discovery document: %s", discovery_url)
    return data


def _get_jwks(jwks_uri: str) -> Dict[str, Any]:
    """
    Fetch JWKS (JSON Web Key Set) from provider.
    Caches result for 1 hour per JWKS URI.
    """
    ts, cached = _jwks_cache.get(jwks_uri, (0.0, None))
    now = time.time()
    if cached is not None and now - ts < 3600:
        return cached
    r = requests.get(jwks_uri, timeout=10)
    r.raise_for_status()
    data = r.json()
    if not isinstance(data, dict):
        raise TokenExchangeError("Invalid JWKS")
    _jwks_cache[jwks_uri] = (now, data)
    return data


class ProviderAdapter:
    """
    Minimal capability interface a concrete identity provider implements.

    The launch-state protocol (state token, launch state, callback validation) is shared;
    adapters only know where the provider's endpoints live and which hint parameters it takes.
    """

    kind = "oidc"
    display_name = "OIDC"
    authorize_path = "/authorize"
    discovery_path = "/.well-known/openid-configuration"

    def authorize_endpoint(self, cfg: BridgeConfig) -> str:
        return f"{(cfg.provider_base_url or '').rstrip('/')}{self.authorize_path}"

    def discovery_url(self, cfg: BridgeConfig) -> str:
        return f"{(cfg.provider_base_url or '').rstrip('/')}{self.discovery_path}"

    def hint_params(self, cfg: BridgeConfig) -> Dict[str, str]:
        params: Dict[str, str] = {}
        if cfg.connection:
            params["connection"] = cfg.connection
        if cfg.organization:
            params["organization"] = cfg.organization
        return params

    def exchange_code(
        self,
        cfg: BridgeConfig,
        *,
        code: str,
        redirect_uri: str,
        expected_nonce: Optional[str],
    ) -> Dict[str, Any]:
        """
        Exchange an authorization code and return validated id_token claims.

        The nonce minted at login-initiation must come back inside the id_token.
        """
        if not code:
            raise TokenExchangeError("Missing authorization code")
        disc = _get_discovery(self.discovery_url(cfg))
        tokens = self._request_tokens(cfg, disc, code=code, redirect_uri=redirect_uri)
        id_token = str(tokens.get("id_token") or "").strip()
        if not id_token:
            raise TokenExchangeError("Missing id_token in token response")
        return self._validate_id_token(cfg, disc, id_token=id_token, expected_nonce=expected_nonce)

    def _request_tokens(self, cfg: BridgeConfig, disc: Dict[str, Any], *, code: str, redirect_uri: str) -> Dict[str, Any]:
        token_endpoint = str(disc.get("token_endpoint") or "")
        if not token_endpoint:
            raise TokenExchangeError("OIDC discovery missing token_endpoint")
        payload = {
            "client_id": cfg.client_id,
            "client_secret": cfg.client_secret or "",
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
        }
        r = requests.post(token_endpoint, data=payload, timeout=10)
        if r.status_code >= 400:
            # Avoid leaking sensitive info; include minimal context.
            raise TokenExchangeError(f"Token exchange failed (status={r.status_code})")
        data = r.json()
        if not isinstance(data, dict):
            raise TokenExchangeError("Invalid token response")
        return data

    def _validate_id_token(
        self,
        cfg: BridgeConfig,
        disc: Dict[str, Any],
        *,
        id_token: str,
        expected_nonce: Optional[str],
    ) -> Dict[str, Any]:
        issuer = str(disc.get("issuer") or "")
        jwks_uri = str(disc.get("jwks_uri") or "")
        if not issuer or not jwks_uri:
            raise TokenExchangeError("OIDC discovery missing issuer/jwks_uri")

        try:
            hdr = jwt.get_unverified_header(id_token)
        except jwt.InvalidTokenError as e:
            raise TokenExchangeError(f"Unreadable id_token header ({type(e).__name__})") from e
        kid = str(hdr.get("kid") or "")
        alg = str(hdr.get("alg") or "RS256")
        if not kid:
            raise TokenExchangeError("ID token missing kid")

        keys = _get_jwks(jwks_uri).get("keys")
        if not isinstance(keys, list):
            raise TokenExchangeError("Invalid JWKS keys")
        jwk = next((k for k in keys if isinstance(k, dict) and str(k.get("kid") or "") == kid), None)
        if jwk is None:
            raise TokenExchangeError("Unknown signing key (kid)")

        if alg not in _ID_TOKEN_ALGORITHMS:
            raise TokenExchangeError(f"Unsupported id_token alg {alg!r}")
        try:
            if alg.startswith("ES"):
                key = jwt.algorithms.ECAlgorithm.from_jwk(json.dumps(jwk))
            else:
                key = jwt.algorithms.RSAAlgorithm.from_jwk(json.dumps(jwk))
        except jwt.PyJWTError as e:
            # JWKS entry does not fit the header alg (wrong kty or curve).
            raise TokenExchangeError(f"Unusable signing key for {alg} ({type(e).__name__})") from e

        try:
            claims = jwt.decode(
                id_token,
                key=key,
                algorithms=[alg],
                audience=cfg.client_id,
                issuer=issuer,
                options={"require": ["exp", "iat", "iss", "aud", "sub"]},
            )
        except jwt.PyJWTError as e:
            raise TokenExchangeError(f"ID token rejected ({type(e).__name__})") from e

        if expected_nonce is not None:
            nonce = str(claims.get("nonce") or "")
            if not nonce or nonce != expected_nonce:
                raise TokenExchangeError("Nonce mismatch", reason=RejectReason.NONCE_MISMATCH)
        return claims


class Auth0Provider(ProviderAdapter):
    kind = "auth0"
    display_name = "Auth0"

    def hint_params(self, cfg: BridgeConfig) -> Dict[str, str]:
        params = super().hint_params(cfg)
        if cfg.audience:
            params["audience"] = cfg.audience
        return params


class LogtoProvider(ProviderAdapter):
    kind = "logto"
    display_name = "Logto"
    authorize_path = "/oidc/auth"
    discovery_path = "/oidc/.well-known/openid-configuration"

    def hint_params(self, cfg: BridgeConfig) -> Dict[str, str]:
        # Logto takes connector hints through `direct_sign_in`; it has no organization hint.
        if cfg.connection:
            return {"direct_sign_in": f"social:{cfg.connection}"}
        return {}


class GenericOidcProvider(ProviderAdapter):
    def authorize_endpoint(self, cfg: BridgeConfig) -> str:
        path = cfg.authorize_path or self.authorize_path
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{(cfg.provider_base_url or '').rstrip('/')}{path}"


_PROVIDERS = {
    "auth0": Auth0Provider,
    "logto": LogtoProvider,
    "oidc": GenericOidcProvider,
}


def get_provider(cfg: BridgeConfig) -> ProviderAdapter:
    try:
        return _PROVIDERS[cfg.provider]()
    except KeyError:
        raise ConfigurationError(f"Unknown OIDC_PROVIDER {cfg.provider!r}") from None


def build_authorize_url(
    cfg: BridgeConfig,
    provider: ProviderAdapter,
    *,
    state: str,
    nonce: Optional[str] = None,
) -> str:
    """
    Build the provider authorization URL. Pure: no network, no side effects.

    The nonce travels as its own parameter (never inside `state`) so the provider can
    echo it back inside the id_token.
    """
    if not cfg.provider_base_url:
        raise ConfigurationError("OIDC base URL not configured")
    if not cfg.client_id:
        raise ConfigurationError("OIDC client ID not configured")

    params = {
        "response_type": "code",
        "client_id": cfg.client_id,
        "redirect_uri": cfg.redirect_uri,
        "scope": cfg.scope,
        "state": state,
    }
    if nonce:
        params["nonce"] = nonce
    params.update(provider.hint_params(cfg))

    return f"{provider.authorize_endpoint(cfg)}?{urlencode(params)}"
