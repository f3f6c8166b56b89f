"""JWT helpers for the bearer credential guarding the API."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from flask import current_app

# Clients ship one long-lived anon key, so tokens default to a long TTL.
DEFAULT_TOKEN_TTL = timedelta(days=365)
DEFAULT_ROLE = "anon"
DEFAULT_JWT_ALGORITHM = "HS256"


class BearerTokenError(ValueError):
    """Raised when an Authorization header does not carry a usable token."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AuthSettings:
    """Configuration for issuing and verifying bearer tokens."""

    secret: str
    token_ttl: timedelta = DEFAULT_TOKEN_TTL
    algorithm: str = DEFAULT_JWT_ALGORITHM

    @classmethod
    def load(cls, app=None) -> "AuthSettings":
        """Build settings from Flask config or environment."""

        app = app or _try_get_current_app()
        secret = None
        if app:
            secret = app.config.get("AUTH_SECRET")

        if not secret:
            secret = os.environ.get("FRIDGEMATE_AUTH_SECRET")

        if not secret:
            raise RuntimeError("FRIDGEMATE_AUTH_SECRET is not configured")

        return cls(secret=secret)


def issue_token(
    role: str = DEFAULT_ROLE,
    settings: AuthSettings | None = None,
    ttl: timedelta | None = None,
) -> str:
    """Create a signed bearer JWT carrying ``role``."""

    settings = settings or AuthSettings.load()
    now = _now()
    payload = {
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + (ttl or settings.token_ttl)).timestamp()),
    }
    return jwt.encode(payload, settings.secret, algorithm=settings.algorithm)


def decode_token(token: str, settings: AuthSettings | None = None) -> dict[str, Any]:
    """Decode and validate a bearer JWT; it must carry a ``role`` claim."""

    settings = settings or AuthSettings.load()
    payload = jwt.decode(
        token,
        settings.secret,
        algorithms=[settings.algorithm],
        options={"require": ["role"]},
    )
    if not isinstance(payload.get("role"), str) or not payload["role"]:
        raise jwt.InvalidTokenError("role claim must be a non-empty string")
    return payload


def parse_bearer_header(header: str | None) -> str:
    """Return the token from an ``Authorization: Bearer <token>`` header."""

    if not header:
        raise BearerTokenError("Authorization header is required")
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise BearerTokenError("Authorization header must use the Bearer scheme")
    return token.strip()


def _try_get_current_app():
    try:
        return current_app._get_current_object()
    except RuntimeError:
        return None
