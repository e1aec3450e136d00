from __future__ import annotations

from datetime import datetime

from flask import Blueprint, jsonify

from app.extensions import db
from app.models import Notification, PushSubscription
from app.segments.common import admin_or_service_error, auth_error, bad_request, int_arg, json_body, service_error
from app.services.errors import ServiceError
from app.services.notifications import build_push_payload, notification_item, send_notification
from app.utils.auth import current_user

notifications_bp = Blueprint("notifications_bp", __name__, url_prefix="/api")


@notifications_bp.get("/notifications")
def list_notifications():
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    rows = (
        Notification.query.filter_by(user_id=int(u.id))
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(int_arg("limit", 80, minimum=1, maximum=200))
        .all()
    )
    return jsonify({"ok": True, "items": [notification_item(n) for n in rows]}), 200


@notifications_bp.get("/notifications/unread-count")
def unread_count():
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    count = Notification.query.filter_by(user_id=int(u.id), is_read=False).count()
    return jsonify({"ok": True, "count": int(count)}), 200


@notifications_bp.post("/notifications/<int:notification_id>/read")
def mark_read(notification_id: int):
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    row = Notification.query.filter_by(id=notification_id, user_id=int(u.id)).first()
    if row is None:
        return jsonify({"ok": False, "message": "Not found"}), 404
    if not row.is_read:
        row.is_read = True
        row.read_at = datetime.utcnow()
        db.session.commit()
    return jsonify({"ok": True, "notification": notification_item(row)}), 200


@notifications_bp.post("/notifications/read-all")
def mark_all_read():
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    updated = (
        Notification.query.filter_by(user_id=int(u.id), is_read=False)
        .update({Notification.is_read: True, Notification.read_at: datetime.utcnow()}, synchronize_session=False)
    )
    db.session.commit()
    return jsonify({"ok": True, "updated": int(updated or 0)}), 200


@notifications_bp.post("/notifications/send")
def send():
    denied = admin_or_service_error()
    if denied:
        return denied
    payload = json_body()
    try:
        result = send_notification(payload.get("type") or "", payload.get("to") or "", payload.get("message") or "", payload.get("subject"))
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, **result}), 200


@notifications_bp.post("/notifications/push-preview")
def push_preview():
    return jsonify({"ok": True, "payload": build_push_payload(json_body())}), 200


@notifications_bp.post("/push/subscriptions")
def subscribe():
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    payload = json_body()
    keys = payload.get("keys") or {}
    endpoint = (payload.get("endpoint") or "").strip()
    p256dh = (keys.get("p256dh") or payload.get("p256dh") or "").strip()
    auth = (keys.get("auth") or payload.get("auth") or "").strip()
    if not endpoint or not p256dh or not auth:
        return bad_request("endpoint, p256dh and auth are required", "MISSING_FIELDS")
    row = PushSubscription.query.filter_by(user_id=int(u.id), endpoint=endpoint).first()
    created = row is None
    if created:
        row = PushSubscription(user_id=int(u.id), endpoint=endpoint, p256dh=p256dh, auth=auth)
        db.session.add(row)
    else:
        row.p256dh = p256dh
        row.auth = auth
    db.session.commit()
    return jsonify({"ok": True, "subscription": row.to_dict()}), 201 if created else 200


@notifications_bp.delete("/push/subscriptions")
def unsubscribe():
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    endpoint = (json_body().get("endpoint") or "").strip()
    if not endpoint:
        return bad_request("endpoint is required", "MISSING_FIELDS")
    deleted = PushSubscription.query.filter_by(user_id=int(u.id), endpoint=endpoint).delete(synchronize_session=False)
    db.session.commit()
    return jsonify({"ok": True, "deleted": int(deleted or 0)}), 200
