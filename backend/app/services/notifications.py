"""In-app notifications, push payloads and outbound SMS/email dispatch."""
from __future__ import annotations

import json
import os
from html import escape

from flask import current_app

from app.extensions import db
from app.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from app.integrations.messaging.factory import build_email_provider, build_messaging_provider
from app.integrations.messaging.twilio_provider import normalize_phone
from app.models import Notification, User
from app.services.errors import ServiceError
from app.utils.integration_settings import get_settings

DEFAULT_PUSH_TITLE = "📦 Marketplace România"
DEFAULT_PUSH_BODY = "Ai o notificare nouă."
DEFAULT_EMAIL_SUBJECT = "Notification from MarketPlace"


def route_for(data: dict | None) -> str:
    """Client URL opened when a push notification of this type is clicked."""
    data = data or {}
    ntype = str(data.get("type") or "").strip()
    if ntype == "tracking_reminder":
        return "/orders?section=selling"
    if ntype in ("new_order", "order"):
        return "/orders"
    if ntype == "message":
        conversation_id = data.get("conversation_id") or data.get("conversationId")
        if conversation_id:
            return f"/messages?conversation={conversation_id}"
        return "/messages"
    return "/notifications"


def build_push_payload(payload: dict | None) -> dict:
    payload = payload or {}
    data = dict(payload.get("data") or {})
    if "type" not in data and payload.get("type"):
        data["type"] = payload.get("type")
    data.setdefault("url", route_for(data))
    return {
        "title": payload.get("title") or DEFAULT_PUSH_TITLE,
        "body": payload.get("body") or payload.get("message") or DEFAULT_PUSH_BODY,
        "data": data,
    }


def notify(user_id: int, ntype: str, title: str, message: str, data: dict | None = None) -> Notification:
    """Queue an in-app notification on the current session; the caller commits."""
    payload = dict(data or {})
    payload.setdefault("type", ntype)
    row = Notification(
        user_id=int(user_id),
        type=(ntype or "general")[:40],
        channel="in_app",
        title=(title or "")[:160],
        message=message or "",
        data_json=json.dumps(payload, default=str),
        status="sent",
    )
    db.session.add(row)
    return row


def notify_admins(ntype: str, title: str, message: str, data: dict | None = None) -> list[Notification]:
    admins = User.query.filter_by(role="admin").all()
    return [notify(int(a.id), ntype, title, message, data) for a in admins]


def notification_item(row: Notification) -> dict:
    item = row.to_dict()
    item["push"] = build_push_payload({"title": row.title, "message": row.message, "data": row.data()})
    item["url"] = item["push"]["data"]["url"]
    return item


def _send_sms(to: str, message: str, *, reference: str = "") -> dict:
    try:
        provider = build_messaging_provider(get_settings())
    except (IntegrationDisabledError, IntegrationMisconfiguredError) as e:
        current_app.logger.warning("sms_not_configured reason=%s", e)
        raise ServiceError("SMS service not configured", status=500, code="SMS_NOT_CONFIGURED") from e
    result = provider.send_sms(to=normalize_phone(to), message=message, reference=reference)
    if not result.ok:
        current_app.logger.warning("sms_send_failed code=%s detail=%s", result.code, result.message)
        raise ServiceError(result.message or "SMS send failed", status=502, code=result.code)
    return {"success": True, "provider": provider.name, "sid": result.provider_ref}


def _send_email(to: str, subject: str, html: str) -> dict:
    try:
        provider = build_email_provider(get_settings())
    except (IntegrationDisabledError, IntegrationMisconfiguredError) as e:
        current_app.logger.warning("email_not_configured reason=%s", e)
        raise ServiceError("Email service not configured", status=500, code="EMAIL_NOT_CONFIGURED") from e
    result = provider.send_email(to=to, subject=subject, html=html)
    if not result.ok:
        current_app.logger.warning("email_send_failed code=%s detail=%s", result.code, result.message)
        raise ServiceError(result.message or "Email send failed", status=502, code=result.code)
    return {"success": True, "provider": provider.name, "id": result.provider_ref}


def send_notification(ntype: str, to: str, message: str, subject: str | None = None) -> dict:
    kind = (ntype or "").strip().lower()
    to = (to or "").strip()
    if kind not in ("sms", "email"):
        raise ServiceError("Invalid notification type", code="INVALID_NOTIFICATION_TYPE")
    if not to or not (message or "").strip():
        raise ServiceError("Missing required fields: type, to, message", code="MISSING_FIELDS")
    if kind == "sms":
        return _send_sms(to, message)
    return _send_email(to, subject or DEFAULT_EMAIL_SUBJECT, message)


def _notify_async() -> bool:
    return (os.getenv("NOTIFY_ASYNC") or "").strip().lower() in ("1", "true", "yes", "on")


def email_user(user: User | None, subject: str, html: str) -> bool:
    """Best-effort email to a user. Never raises; returns whether it was handed off."""
    to = (getattr(user, "email", None) or "").strip()
    if not to:
        return False
    if _notify_async():
        try:
            from app.tasks.notification_tasks import send_notification_task

            send_notification_task.delay(ntype="email", to=to, message=html, subject=subject)
            return True
        except Exception:
            current_app.logger.warning("email_enqueue_failed falling_back_inline to_user=%s", user.id, exc_info=True)
    try:
        _send_email(to, subject, html)
        return True
    except ServiceError as e:
        current_app.logger.info("email_skipped user_id=%s code=%s", user.id, e.code)
        return False


def html_paragraphs(*lines: str) -> str:
    return "".join(f"<p>{escape(line)}</p>" for line in lines if line)
