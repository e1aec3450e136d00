from __future__ import annotations

from flask import jsonify, request

from app.extensions import db
from app.models import User
from app.services.errors import ServiceError
from app.utils.auth import current_user, is_service_request
from app.utils.observability import get_request_id

_TABLES_READY = False


def ensure_tables_once():
    """Create missing tables on the first request (dev SQLite without migrations)."""
    global _TABLES_READY
    if _TABLES_READY:
        return
    try:
        db.create_all()
    except Exception:
        db.session.rollback()
    _TABLES_READY = True


def json_body() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def error_response(payload: dict, status: int):
    rid = get_request_id().strip()
    if rid:
        payload["trace_id"] = rid
    return jsonify(payload), status


def auth_error(user: User | None, *, admin: bool = False):
    if user is None:
        return error_response({"ok": False, "message": "Unauthorized", "error": "UNAUTHORIZED"}, 401)
    if user.is_suspended:
        return error_response({"ok": False, "message": "Contul tău este suspendat", "error": "ACCOUNT_SUSPENDED"}, 403)
    if admin and not user.is_admin:
        return error_response({"ok": False, "message": "Admin only", "error": "FORBIDDEN"}, 403)
    return None


def admin_or_service_error():
    if is_service_request():
        return None
    return auth_error(current_user(), admin=True)


def service_error(e: ServiceError):
    db.session.rollback()
    return error_response(e.to_dict(), e.status)


def bad_request(message: str, code: str = "BAD_REQUEST", status: int = 400):
    return error_response({"ok": False, "message": message, "error": code}, status)


def int_arg(name: str, default: int, *, minimum: int = 0, maximum: int = 100) -> int:
    try:
        value = int(request.args.get(name) or default)
    except (TypeError, ValueError):
        value = default
    return max(minimum, min(value, maximum))


def float_arg(name: str):
    raw = request.args.get(name)
    if raw in (None, ""):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None
