"""
Bridge HTTP server.

Gates every page behind the launch → OIDC handshake and handles the provider callback.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import requests
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse

from ltibridge.auth.callback import CallbackOutcome, validate_callback
from ltibridge.auth.config import BridgeConfig, load_bridge_config
from ltibridge.auth.deps import authenticate_request
from ltibridge.auth.errors import GENERIC_LOGIN_ERROR, RejectReason, TokenExchangeError
from ltibridge.auth.gate import (
    LAUNCH_CONTEXT_PARAM,
    GateAction,
    clear_state_cookie_kwargs,
    cookie_secure_for,
    decide,
    initiate_login,
)
from ltibridge.auth.launch_state import raw_query_param
from ltibridge.auth.models import BridgeUser
from ltibridge.auth.oidc import get_provider
from ltibridge.auth.session import clear_session_cookie_kwargs, encode_session, session_cookie_kwargs
from ltibridge.auth.state_token import StateTokenCodec
from ltibridge.auth.util import sanitize_next_path

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/api/auth/callback"


def _is_public_path(cfg: BridgeConfig, path: str) -> bool:
    # Health checks and the fixed error/denial destinations must never loop through the gate.
    if path in ("/healthz", cfg.error_path, cfg.denied_path):
        return True
    # The callback arrives without a session by definition.
    if path == CALLBACK_PATH:
        return True
    # Allow logout even if the cookie is already missing/invalid.
    if path in ("/api/auth/logout", "/api/auth/mode"):
        return True
    return False


def _error_redirect(cfg: BridgeConfig, *, secure: bool) -> RedirectResponse:
    # Generic on purpose: the specific reason is only logged.
    resp = RedirectResponse(url=f"{cfg.error_path}?{urlencode({'message': GENERIC_LOGIN_ERROR})}", status_code=302)
    resp.headers["Cache-Control"] = "no-store"
    resp.set_cookie(**clear_state_cookie_kwargs(cfg, secure=secure))
    return resp


def create_app(cfg: Optional[BridgeConfig] = None) -> FastAPI:
    """
    Build the app around one immutable configuration value.

    Raises ConfigurationError when provider identifiers are missing; this is fatal at startup.
    """
    cfg = (cfg or load_bridge_config()).validate()
    provider = get_provider(cfg)
    codec = StateTokenCodec(cfg.state_secret or "")

    app = FastAPI(title="LTI OIDC bridge")
    app.state.bridge_config = cfg

    logger.info(
        "Bridge configured: provider=%s base_url=%s redirect_uri=%s state_ttl=%ds",
        provider.kind,
        cfg.provider_base_url,
        cfg.redirect_uri,
        cfg.state_ttl_seconds,
    )

    @app.middleware("http")
    async def edge_gate(request: Request, call_next):
        """Route every non-public request: pass through, start login, or deny."""
        start_time = time.time()
        path = request.url.path or ""
        logger.debug("%s %s", request.method, path)
        try:
            if request.method == "OPTIONS" or _is_public_path(cfg, path):
                response = await call_next(request)
                logger.debug("%s %s - %d (%.3fs)", request.method, path, response.status_code, time.time() - start_time)
                return response

            secure = cookie_secure_for(cfg, request)
            user = authenticate_request(cfg, request)
            action = decide(user is not None, request.query_params.get(LAUNCH_CONTEXT_PARAM))

            if action is GateAction.INITIATE_LOGIN:
                return initiate_login(
                    cfg,
                    provider,
                    codec,
                    request.query_params.get(LAUNCH_CONTEXT_PARAM) or "",
                    secure=secure,
                )

            if action is GateAction.DENY:
                logger.info("No session and no %s: redirecting to %s", LAUNCH_CONTEXT_PARAM, cfg.denied_path)
                return RedirectResponse(url=cfg.denied_path, status_code=302)

            request.state.user = user
            response = await call_next(request)
            if request.cookies.get(cfg.state_cookie_name):
                # Leftover state cookie from an earlier attempt; the session already exists.
                logger.info("Clearing stale state cookie for an established session")
                response.set_cookie(**clear_state_cookie_kwargs(cfg, secure=secure))
            logger.debug("%s %s - %d (%.3fs)", request.method, path, response.status_code, time.time() - start_time)
            return response
        except Exception as e:
            logger.exception("%s %s - ERROR after %.3fs: %s", request.method, path, time.time() - start_time, str(e))
            raise

    @app.get("/healthz")
    def healthz() -> Dict[str, Any]:
        return {"ok": True}

    @app.get("/api/auth/mode")
    def auth_mode() -> Dict[str, Any]:
        return {
            "ok": True,
            "provider": provider.kind,
            "providerName": provider.display_name,
            "configured": cfg.configured,
        }

    @app.get(CALLBACK_PATH)
    def auth_callback(request: Request):
        """Handle the provider redirect: validate state, exchange the code, establish the session."""
        secure = cookie_secure_for(cfg, request)

        # Read before anything else can reinterpret the echoed value.
        raw_state = raw_query_param(request, "state")
        code = raw_query_param(request, "code")
        provider_error = raw_query_param(request, "error")

        outcome = validate_callback(
            codec,
            cookie_value=request.cookies.get(cfg.state_cookie_name),
            raw_state=raw_state,
        )
        if not outcome.ok:
            return _error_redirect(cfg, secure=secure)

        try:
            return _complete_login(outcome, code=code, provider_error=provider_error, secure=secure)
        except Exception:
            # The state cookie is already spent; it must be cleared whatever went wrong.
            logger.exception(
                "OIDC callback rejected: reason=%s unexpected error", RejectReason.TOKEN_EXCHANGE_FAILED.value
            )
            return _error_redirect(cfg, secure=secure)

    def _complete_login(
        outcome: CallbackOutcome,
        *,
        code: Optional[str],
        provider_error: Optional[str],
        secure: bool,
    ) -> RedirectResponse:
        if provider_error:
            logger.warning(
                "OIDC callback rejected: reason=%s provider error=%s",
                RejectReason.TOKEN_EXCHANGE_FAILED.value,
                provider_error,
            )
            return _error_redirect(cfg, secure=secure)
        if not outcome.launch_context:
            logger.warning("OIDC callback rejected: reason=%s", RejectReason.MISSING_LAUNCH_CONTEXT.value)
            return _error_redirect(cfg, secure=secure)

        try:
            claims = provider.exchange_code(
                cfg,
                code=code or "",
                redirect_uri=cfg.redirect_uri,
                expected_nonce=outcome.nonce,
            )
        except TokenExchangeError as e:
            logger.warning("OIDC callback rejected: reason=%s %s", e.reason.value, str(e))
            return _error_redirect(cfg, secure=secure)
        except requests.RequestException as e:
            logger.warning(
                "OIDC callback rejected: reason=%s %s", RejectReason.TOKEN_EXCHANGE_FAILED.value, type(e).__name__
            )
            return _error_redirect(cfg, secure=secure)

        user = BridgeUser(
            provider=provider.kind,
            sub=str(claims.get("sub") or ""),
            email=str(claims.get("email") or "").strip().lower() or None,
            name=str(claims.get("name") or "").strip() or None,
            launch_context=outcome.launch_context,
        )
        session_value = encode_session(cfg, user)
        if not session_value:
            logger.error("Session signing is not configured (BRIDGE_SESSION_SECRET)")
            return _error_redirect(cfg, secure=secure)

        logger.info("Login completed via %s for sub=%s", provider.display_name, user.sub)
        resp = RedirectResponse(url=sanitize_next_path(cfg.post_login_path), status_code=302)
        resp.headers["Cache-Control"] = "no-store"
        resp.set_cookie(**session_cookie_kwargs(cfg, session_value))
        resp.set_cookie(**clear_state_cookie_kwargs(cfg, secure=secure))
        return resp

    @app.api_route("/api/auth/logout", methods=["GET", "POST"])
    def auth_logout() -> JSONResponse:
        resp = JSONResponse(content={"ok": True})
        resp.set_cookie(**clear_session_cookie_kwargs(cfg))
        return resp

    @app.get("/api/auth/me")
    def auth_me(request: Request) -> Dict[str, Any]:
        user: BridgeUser = request.state.user
        return {
            "ok": True,
            "user": {
                "provider": user.provider,
                "sub": user.sub,
                "email": user.email,
                "name": user.name,
            },
            "launchContext": user.launch_context,
        }

    @app.get("/")
    def index(request: Request) -> Dict[str, Any]:
        user: BridgeUser = request.state.user
        return {"ok": True, "message": "Session active", "launchContext": user.launch_context}

    @app.get(cfg.denied_path)
    def lti_required() -> JSONResponse:
        return JSONResponse(
            status_code=403,
            content={
                "ok": False,
                "detail": "This application must be accessed via a valid LTI launch from your LMS.",
            },
        )

    @app.get(cfg.error_path)
    def auth_error(request: Request) -> JSONResponse:
        message = request.query_params.get("message") or "An unknown authentication error occurred."
        return JSONResponse(status_code=401, content={"ok": False, "detail": message})

    return app


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    import uvicorn

    # Configure logging for the application
    log_level = os.getenv("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Map Python logging levels to uvicorn log levels
    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    # ConfigurationError propagates here: refuse to start without provider identifiers.
    app = create_app()
    logger.info("Starting bridge server on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(app, host=host, port=port, log_level=uvicorn_log_level)
