from __future__ import annotations

import hmac
import os

from flask import g, request

from app.extensions import db
from app.models import User
from app.utils.jwt_utils import decode_token, get_bearer_token

ROLES = ("user", "moderator", "admin")


def current_user() -> User | None:
    cached = getattr(g, "_current_user", None)
    if cached is not None:
        return cached
    token = get_bearer_token(request.headers.get("Authorization", ""))
    if not token:
        return None
    payload = decode_token(token)
    if not payload:
        return None
    try:
        uid = int(payload.get("sub"))
    except (TypeError, ValueError):
        return None
    user = db.session.get(User, uid)
    if user is not None:
        g._current_user = user
        g.auth_user_id = uid
    return user


def has_role(user: User | None, role: str) -> bool:
    if user is None:
        return False
    return (user.role or "user").strip().lower() == (role or "").strip().lower()


def is_admin(user: User | None) -> bool:
    return has_role(user, "admin")


def is_service_request() -> bool:
    """True when the caller presents the internal service key (cron, workers)."""
    expected = (os.getenv("SERVICE_API_KEY") or "").strip()
    if not expected:
        return False
    provided = (request.headers.get("X-Service-Key") or "").strip()
    return bool(provided) and hmac.compare_digest(provided, expected)
