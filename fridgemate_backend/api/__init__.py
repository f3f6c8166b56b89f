"""API package wiring for the FridgeMate backend."""

from __future__ import annotations

import jwt
from flask import Flask, current_app, g, request

from .analysis import bp as analysis_bp
from .deps import error_response
from .fridge import bp as fridge_bp
from .history import bp as history_bp
from .recipes import bp as recipes_bp
from fridgemate_backend.services.auth_tokens import (
    AuthSettings,
    BearerTokenError,
    decode_token,
    parse_bearer_header,
)

_SKIP_PATHS = {"/healthz", "/api/healthz", "/api/health"}


def require_bearer_token():
    """Reject ``/api`` requests without a valid bearer JWT."""

    path = request.path or ""
    if not path.startswith("/api") or path in _SKIP_PATHS:
        return None
    if request.method == "OPTIONS":
        return None

    settings: AuthSettings | None = current_app.extensions.get("auth_settings")
    if settings is None:
        return error_response("FRIDGEMATE_AUTH_SECRET is not configured", 503)

    try:
        token = parse_bearer_header(request.headers.get("Authorization"))
        claims = decode_token(token, settings=settings)
    except BearerTokenError as exc:
        return error_response(str(exc), 401)
    except jwt.ExpiredSignatureError:
        return error_response("token expired", 401)
    except jwt.InvalidTokenError:
        current_app.logger.info("rejected bearer token", extra={"path": path})
        return error_response("invalid token", 401)

    g.auth_role = claims["role"]
    return None


def init_app(app: Flask) -> None:
    """Register all API blueprints on the given application."""

    app.before_request(require_bearer_token)

    app.register_blueprint(analysis_bp)
    app.register_blueprint(history_bp)
    app.register_blueprint(fridge_bp)
    app.register_blueprint(recipes_bp)
