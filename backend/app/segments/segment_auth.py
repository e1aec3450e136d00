from __future__ import annotations

import re
from datetime import datetime

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import IntegrityError

from app.extensions import db
from app.models import User
from app.segments.common import auth_error, bad_request, ensure_tables_once, json_body
from app.services.seller_limits import kyc_enforcement, seller_level
from app.utils.auth import current_user
from app.utils.events import log_event, log_security_event
from app.utils.jwt_utils import create_access_token
from app.utils.observability import client_ip

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/auth")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 8
_PROFILE_FIELDS = (
    "display_name",
    "phone",
    "address_line1",
    "city",
    "postal_code",
    "country",
    "iban",
    "account_number",
    "sort_code",
    "paypal_email",
    "stripe_account_id",
)


@auth_bp.before_app_request
def _ensure_tables_once():
    ensure_tables_once()


def _me_payload(user: User) -> dict:
    body = user.to_dict(include_private=True)
    body["address"] = {
        "address_line1": user.address_line1 or "",
        "city": user.city or "",
        "postal_code": user.postal_code or "",
        "country": user.country or "",
    }
    body["kyc"] = kyc_enforcement(user)
    body["seller_level"] = seller_level(user)
    return body


@auth_bp.post("/register")
def register():
    payload = json_body()
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    display_name = (payload.get("display_name") or payload.get("name") or "").strip()
    phone = (payload.get("phone") or "").strip() or None

    if not email or not password:
        return bad_request("email and password are required", "MISSING_FIELDS")
    if not _EMAIL_RE.match(email):
        return bad_request("Invalid email", "INVALID_EMAIL")
    if len(password) < MIN_PASSWORD_LENGTH:
        return bad_request(f"Password must be at least {MIN_PASSWORD_LENGTH} characters", "WEAK_PASSWORD")
    if User.query.filter_by(email=email).first() is not None:
        return jsonify({"ok": False, "message": "Email already in use", "error": "EMAIL_IN_USE"}), 409

    user = User(email=email, display_name=display_name or email.split("@")[0], phone=phone, last_login_ip=client_ip() or None)
    user.set_password(password)
    db.session.add(user)
    try:
        db.session.flush()
        log_event("user_registered", actor_user_id=user.id, subject_type="user", subject_id=user.id)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"ok": False, "message": "Email already in use", "error": "EMAIL_IN_USE"}), 409
    current_app.logger.info("user_registered user_id=%s", user.id)
    return jsonify({"ok": True, "token": create_access_token(int(user.id)), "user": user.to_dict(include_private=True)}), 201


@auth_bp.post("/login")
def login():
    payload = json_body()
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    if not email or not password:
        return bad_request("email and password are required", "MISSING_FIELDS")

    user = User.query.filter_by(email=email).first()
    if user is None or not user.check_password(password):
        log_security_event(
            "login_failed",
            user_id=int(user.id) if user else None,
            details={"severity": "WARNING", "email": email, "ip": client_ip()},
        )
        db.session.commit()
        return jsonify({"ok": False, "message": "Invalid credentials", "error": "INVALID_CREDENTIALS"}), 401
    if user.is_suspended:
        log_security_event("login_suspended", user_id=int(user.id), details={"severity": "WARNING"})
        db.session.commit()
        return jsonify({"ok": False, "message": "Contul tău este suspendat", "error": "ACCOUNT_SUSPENDED"}), 403

    user.last_login_ip = client_ip() or user.last_login_ip
    log_security_event("login_succeeded", user_id=int(user.id), details={"ip": client_ip()})
    db.session.commit()
    return jsonify({"ok": True, "token": create_access_token(int(user.id)), "user": user.to_dict(include_private=True)}), 200


@auth_bp.get("/me")
def me():
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    return jsonify({"ok": True, "user": _me_payload(u)}), 200


@auth_bp.patch("/me")
def update_me():
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    payload = json_body()
    changed = []
    for field in _PROFILE_FIELDS:
        if field in payload:
            value = (str(payload.get(field) or "")).strip()
            if field == "display_name" and not value:
                return bad_request("display_name cannot be empty", "INVALID_DISPLAY_NAME")
            setattr(u, field, value or None)
            changed.append(field)
    if any(f in changed for f in ("iban", "account_number", "sort_code", "stripe_account_id", "paypal_email")):
        log_security_event("payout_details_changed", user_id=int(u.id), details={"severity": "WARNING", "fields": changed})
    db.session.commit()
    return jsonify({"ok": True, "user": _me_payload(u)}), 200


@auth_bp.post("/kyc")
def submit_kyc():
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    if (u.kyc_status or "") == "approved":
        return jsonify({"ok": True, "kyc": kyc_enforcement(u)}), 200
    u.kyc_documents_submitted = True
    u.kyc_status = "pending"
    log_event("kyc_submitted", actor_user_id=u.id, subject_type="user", subject_id=u.id, metadata={"at": datetime.utcnow()})
    db.session.commit()
    return jsonify({"ok": True, "kyc": kyc_enforcement(u)}), 200
