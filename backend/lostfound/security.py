from __future__ import annotations

import os
from functools import wraps
from typing import Optional, Tuple

from flask import current_app, g, has_app_context
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired

from .errors import AdminRequired, AuthenticationRequired, VerificationRequired


def _secret() -> str:
    if has_app_context():
        return current_app.config.get("SECRET_KEY") or "change-me"
    return os.getenv("SECRET_KEY", "change-me")


def _serializer() -> URLSafeTimedSerializer:
    # Salt provides namespace isolation for tokens
    return URLSafeTimedSerializer(secret_key=_secret(), salt="auth-token")


def issue_token(user_id: int, role: str = "user") -> str:
    """Issue a signed token for a user.

    Payload is minimal: {"id": int, "role": str}
    """
    s = _serializer()
    return s.dumps({"id": int(user_id), "role": str(role or "user")})


def verify_token(token: str | None) -> Tuple[Optional[int], Optional[str]]:
    """Verify a token and return (user_id, role) if valid, else (None, None).

    Used for both HTTP bearer auth and the live-channel handshake.
    Max age configurable via AUTH_TOKEN_MAX_AGE seconds (default 30 days).
    """
    if not token:
        return (None, None)
    max_age_default = 60 * 60 * 24 * 30  # 30 days
    try:
        max_age = int(os.getenv("AUTH_TOKEN_MAX_AGE", str(max_age_default)))
    except ValueError:
        max_age = max_age_default
    try:
        data = _serializer().loads(token, max_age=max_age)
        uid = int(data.get("id")) if isinstance(data, dict) and data.get("id") is not None else None
        role = str(data.get("role")) if isinstance(data, dict) and data.get("role") is not None else None
        return (uid, role)
    except (BadSignature, SignatureExpired, ValueError, TypeError):
        return (None, None)


def current_user():
    """The user loaded by the API's before_request hook, or None."""
    return getattr(g, "current_user", None)


def login_required(verified: bool = False, admin: bool = False):
    """Reject the request unless a user is authenticated (and verified / admin when asked)."""

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = current_user()
            if user is None:
                raise AuthenticationRequired()
            if verified and not user.is_verified:
                raise VerificationRequired()
            if admin and not user.is_admin:
                raise AdminRequired()
            return fn(*args, **kwargs)

        return wrapper

    return decorator
