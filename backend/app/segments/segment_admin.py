"""Admin console endpoints.

Everything here requires an admin bearer token; the ``/jobs/*`` triggers also
accept the internal service key so cron can drive them without a user.
"""
from __future__ import annotations

from datetime import datetime

from flask import Blueprint, jsonify, request

from app.extensions import db
from app.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError, ProviderError
from app.integrations.indexing.factory import indexing_health
from app.integrations.messaging.factory import messaging_health
from app.integrations.payments.factory import payment_health
from app.models import Dispute, FraudAlert, Payout, PlatformFee, ProhibitedItem, Refund, User
from app.segments.common import admin_or_service_error, auth_error, bad_request, int_arg, json_body, service_error
from app.services import fraud, payouts, refunds
from app.services.errors import ServiceError
from app.services.notifications import notify
from app.services.promotions import expire_promotions
from app.services.seller_limits import update_seller_limit
from app.services.tracking_reminders import send_tracking_reminders
from app.utils.auth import current_user
from app.utils.events import log_event
from app.utils.integration_settings import get_settings, update_settings

admin_bp = Blueprint("admin_bp", __name__, url_prefix="/api/admin")


def _admin():
    u = current_user()
    return u, auth_error(u, admin=True)


def _status_filter(query, model):
    status = (request.args.get("status") or "").strip().lower()
    if status:
        query = query.filter(model.status == status)
    return query.order_by(model.created_at.desc()).limit(int_arg("limit", 100, minimum=1, maximum=500))


@admin_bp.get("/integrations")
def integrations():
    _u, denied = _admin()
    if denied:
        return denied
    return jsonify({"ok": True, "settings": get_settings().to_dict()}), 200


@admin_bp.put("/integrations")
def update_integrations():
    u, denied = _admin()
    if denied:
        return denied
    try:
        row = update_settings(json_body(), actor_id=int(u.id))
    except ValueError as e:
        db.session.rollback()
        return bad_request(str(e), "INVALID_SETTINGS")
    log_event("admin.integrations_updated", actor_user_id=u.id, subject_type="integration_settings", subject_id=row.id, metadata=row.to_dict())
    db.session.commit()
    return jsonify({"ok": True, "settings": row.to_dict()}), 200


@admin_bp.get("/integrations/health")
def integrations_health():
    _u, denied = _admin()
    if denied:
        return denied
    settings = get_settings()
    return jsonify(
        {
            "ok": True,
            "payments": payment_health(settings),
            "messaging": messaging_health(settings),
            "indexing": indexing_health(settings),
        }
    ), 200


@admin_bp.get("/fees")
def fees():
    _u, denied = _admin()
    if denied:
        return denied
    rows = PlatformFee.query.order_by(PlatformFee.fee_type.asc(), PlatformFee.id.asc()).all()
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200


def _apply_fee_payload(row: PlatformFee, payload: dict):
    if "fee_type" in payload:
        row.fee_type = (payload.get("fee_type") or "").strip()[:40]
    if "amount" in payload:
        amount = float(payload.get("amount"))
        if amount < 0:
            raise ValueError("amount must be >= 0")
        row.amount = amount
    if "is_percentage" in payload:
        row.is_percentage = bool(payload.get("is_percentage"))
    if "is_active" in payload:
        row.is_active = bool(payload.get("is_active"))
    if "description" in payload:
        row.description = (payload.get("description") or "").strip()[:240] or None


@admin_bp.post("/fees")
def create_fee():
    u, denied = _admin()
    if denied:
        return denied
    payload = json_body()
    row = PlatformFee(is_active=True)
    try:
        _apply_fee_payload(row, payload)
    except (TypeError, ValueError) as e:
        return bad_request(f"Invalid fee: {e}", "INVALID_FEE")
    if not row.fee_type:
        return bad_request("fee_type is required", "MISSING_FIELDS")
    db.session.add(row)
    db.session.flush()
    log_event("admin.fee_created", actor_user_id=u.id, subject_type="platform_fee", subject_id=row.id, metadata=row.to_dict())
    db.session.commit()
    return jsonify({"ok": True, "fee": row.to_dict()}), 201


@admin_bp.patch("/fees/<int:fee_id>")
def update_fee(fee_id: int):
    u, denied = _admin()
    if denied:
        return denied
    row = db.session.get(PlatformFee, fee_id)
    if row is None:
        return jsonify({"ok": False, "message": "Not found"}), 404
    try:
        _apply_fee_payload(row, json_body())
    except (TypeError, ValueError) as e:
        db.session.rollback()
        return bad_request(f"Invalid fee: {e}", "INVALID_FEE")
    log_event("admin.fee_updated", actor_user_id=u.id, subject_type="platform_fee", subject_id=row.id, metadata=row.to_dict())
    db.session.commit()
    return jsonify({"ok": True, "fee": row.to_dict()}), 200


@admin_bp.delete("/fees/<int:fee_id>")
def delete_fee(fee_id: int):
    u, denied = _admin()
    if denied:
        return denied
    row = db.session.get(PlatformFee, fee_id)
    if row is None:
        return jsonify({"ok": False, "message": "Not found"}), 404
    row.is_active = False
    log_event("admin.fee_deactivated", actor_user_id=u.id, subject_type="platform_fee", subject_id=row.id)
    db.session.commit()
    return jsonify({"ok": True, "fee": row.to_dict()}), 200


@admin_bp.get("/prohibited-items")
def prohibited_items():
    _u, denied = _admin()
    if denied:
        return denied
    rows = ProhibitedItem.query.order_by(ProhibitedItem.keyword.asc()).all()
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200


@admin_bp.post("/prohibited-items")
def add_prohibited_item():
    u, denied = _admin()
    if denied:
        return denied
    payload = json_body()
    keyword = (payload.get("keyword") or "").strip().lower()
    severity = (payload.get("severity") or "block").strip().lower()
    if not keyword:
        return bad_request("keyword is required", "MISSING_FIELDS")
    if severity not in ("block", "flag"):
        return bad_request("severity must be block or flag", "INVALID_SEVERITY")
    row = ProhibitedItem(keyword=keyword[:120], category=(payload.get("category") or "").strip()[:80] or None, severity=severity)
    db.session.add(row)
    db.session.flush()
    log_event("admin.prohibited_item_added", actor_user_id=u.id, subject_type="prohibited_item", subject_id=row.id, metadata={"keyword": keyword})
    db.session.commit()
    return jsonify({"ok": True, "item": row.to_dict()}), 201


@admin_bp.delete("/prohibited-items/<int:item_id>")
def remove_prohibited_item(item_id: int):
    u, denied = _admin()
    if denied:
        return denied
    row = db.session.get(ProhibitedItem, item_id)
    if row is None:
        return jsonify({"ok": False, "message": "Not found"}), 404
    row.is_active = False
    log_event("admin.prohibited_item_disabled", actor_user_id=u.id, subject_type="prohibited_item", subject_id=row.id)
    db.session.commit()
    return jsonify({"ok": True, "item": row.to_dict()}), 200


def _target_user(user_id: int) -> User | None:
    return db.session.get(User, int(user_id))


@admin_bp.put("/users/<int:user_id>/seller-limit")
def set_seller_limit(user_id: int):
    u, denied = _admin()
    if denied:
        return denied
    if _target_user(user_id) is None:
        return jsonify({"ok": False, "message": "User not found"}), 404
    try:
        row = update_seller_limit(user_id, json_body().get("tier") or "", actor_id=int(u.id))
    except ValueError as e:
        db.session.rollback()
        return bad_request(str(e), "INVALID_TIER")
    return jsonify({"ok": True, "limit": row.to_dict()}), 200


@admin_bp.post("/users/<int:user_id>/kyc")
def review_kyc(user_id: int):
    u, denied = _admin()
    if denied:
        return denied
    target = _target_user(user_id)
    if target is None:
        return jsonify({"ok": False, "message": "User not found"}), 404
    decision = (json_body().get("decision") or "").strip().lower()
    if decision == "approve":
        target.kyc_status = "approved"
        target.is_verified = True
        target.kyc_verified_at = datetime.utcnow()
        notify(int(target.id), "kyc", "Identitate verificată", "Contul tău a fost verificat. Poți vinde și retrage fonduri.")
    elif decision == "reject":
        target.kyc_status = "rejected"
        target.kyc_verified_at = None
        notify(int(target.id), "kyc", "Verificare respinsă", "Documentele tale nu au putut fi verificate. Te rugăm să le retrimiți.")
    else:
        return bad_request("decision must be approve or reject", "INVALID_DECISION")
    log_event(f"admin.kyc_{decision}", actor_user_id=u.id, subject_type="user", subject_id=target.id)
    db.session.commit()
    return jsonify({"ok": True, "user": target.to_dict(include_private=True)}), 200


@admin_bp.post("/users/<int:user_id>/suspend")
def suspend_user(user_id: int):
    u, denied = _admin()
    if denied:
        return denied
    target = _target_user(user_id)
    if target is None:
        return jsonify({"ok": False, "message": "User not found"}), 404
    if int(target.id) == int(u.id):
        return bad_request("You cannot suspend yourself", "SELF_SUSPEND")
    suspended = bool(json_body().get("suspended", True))
    target.is_suspended = suspended
    log_event("admin.user_suspended" if suspended else "admin.user_unsuspended", actor_user_id=u.id, subject_type="user", subject_id=target.id, severity="WARN")
    db.session.commit()
    return jsonify({"ok": True, "user": target.to_dict(include_private=True)}), 200


@admin_bp.get("/alerts")
def alerts():
    _u, denied = _admin()
    if denied:
        return denied
    rows = _status_filter(FraudAlert.query, FraudAlert).all()
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200


@admin_bp.post("/alerts/<int:alert_id>/resolve")
def resolve_alert(alert_id: int):
    u, denied = _admin()
    if denied:
        return denied
    try:
        row = fraud.resolve_alert(alert_id, actor_id=int(u.id), status=(json_body().get("status") or "resolved").strip().lower())
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "alert": row.to_dict()}), 200


@admin_bp.get("/refunds")
def list_refunds():
    _u, denied = _admin()
    if denied:
        return denied
    rows = _status_filter(Refund.query, Refund).all()
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200


@admin_bp.post("/refunds/process")
def process_refund():
    u, denied = _admin()
    if denied:
        return denied
    payload = json_body()
    try:
        refund = refunds.process_refund(
            u,
            refund_id=payload.get("refund_id"),
            order_id=payload.get("order_id"),
            amount=payload.get("amount"),
            reason=payload.get("reason") or "",
        )
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "refund": refund.to_dict()}), 200


@admin_bp.post("/refunds/<int:refund_id>/reject")
def reject_refund(refund_id: int):
    u, denied = _admin()
    if denied:
        return denied
    try:
        refund = refunds.reject_refund(u, refund_id, json_body().get("note") or "")
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "refund": refund.to_dict()}), 200


@admin_bp.get("/payouts")
def list_payouts():
    _u, denied = _admin()
    if denied:
        return denied
    query = Payout.query
    kind = (request.args.get("kind") or "").strip().lower()
    if kind:
        query = query.filter(Payout.kind == kind)
    rows = _status_filter(query, Payout).all()
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200


@admin_bp.post("/payouts/<int:payout_id>/retry")
def retry_payout(payout_id: int):
    u, denied = _admin()
    if denied:
        return denied
    try:
        row = payouts.retry_payout(payout_id, actor_id=int(u.id))
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "payout": row.to_dict()}), 200


@admin_bp.post("/payouts/<int:payout_id>/check")
def check_payout(payout_id: int):
    _u, denied = _admin()
    if denied:
        return denied
    row = db.session.get(Payout, payout_id)
    if row is None:
        return jsonify({"ok": False, "message": "Not found"}), 404
    try:
        row = payouts.check_payout_status(row)
    except (IntegrationDisabledError, IntegrationMisconfiguredError, ProviderError) as e:
        db.session.rollback()
        return jsonify({"ok": False, "message": str(e) or "Payments unavailable", "error": "PAYMENTS_UNAVAILABLE"}), 503
    return jsonify({"ok": True, "payout": row.to_dict()}), 200


@admin_bp.post("/payouts/<int:payout_id>/complete")
def complete_withdrawal(payout_id: int):
    u, denied = _admin()
    if denied:
        return denied
    try:
        row = payouts.complete_withdrawal(payout_id, actor_id=int(u.id), reference=json_body().get("reference") or "")
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "payout": row.to_dict()}), 200


@admin_bp.get("/disputes")
def disputes():
    _u, denied = _admin()
    if denied:
        return denied
    rows = _status_filter(Dispute.query, Dispute).all()
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200


@admin_bp.post("/disputes/<int:dispute_id>/resolve")
def resolve_dispute(dispute_id: int):
    u, denied = _admin()
    if denied:
        return denied
    payload = json_body()
    try:
        row = refunds.resolve_dispute(u, dispute_id, payload.get("resolution") or "", payload.get("note") or "")
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "dispute": row.to_dict()}), 200


JOBS = {
    "tracking-reminders": lambda: send_tracking_reminders(),
    "fraud-scan": lambda: fraud.scan_platform(),
    "payouts": lambda: payouts.process_pending_payouts(),
    "payout-statuses": lambda: payouts.check_payout_statuses(),
    "expire-promotions": lambda: {"expired": expire_promotions()},
}


@admin_bp.post("/jobs/<name>")
def run_job(name: str):
    denied = admin_or_service_error()
    if denied:
        return denied
    job = JOBS.get(name)
    if job is None:
        return jsonify({"ok": False, "message": f"Unknown job {name}"}), 404
    return jsonify({"ok": True, "job": name, "result": job()}), 200
