from __future__ import annotations

from flask import Blueprint, jsonify

from app.segments.common import auth_error, bad_request, json_body, service_error
from app.services import messaging
from app.services.errors import ServiceError
from app.utils.auth import current_user

messages_bp = Blueprint("messages_bp", __name__, url_prefix="/api/conversations")


@messages_bp.get("")
def conversations():
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    return jsonify({"ok": True, "items": messaging.list_conversations(u)}), 200


@messages_bp.post("")
def start():
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    payload = json_body()
    listing_id = payload.get("listing_id") or payload.get("listingId")
    try:
        listing_id = int(listing_id)
    except (TypeError, ValueError):
        return bad_request("listing_id is required", "MISSING_FIELDS")
    try:
        row, created = messaging.start_conversation(u, listing_id)
        if (payload.get("message") or "").strip():
            messaging.send_message(u, int(row.id), payload.get("message"))
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "conversation": row.to_dict(), "created": created}), 201 if created else 200


@messages_bp.get("/<int:conversation_id>/messages")
def messages(conversation_id: int):
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    try:
        rows = messaging.list_messages(u, conversation_id)
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "items": [m.to_dict() for m in rows]}), 200


@messages_bp.post("/<int:conversation_id>/messages")
def send(conversation_id: int):
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    try:
        msg = messaging.send_message(u, conversation_id, json_body().get("content") or "")
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "message": msg.to_dict()}), 201


@messages_bp.post("/<int:conversation_id>/read")
def read(conversation_id: int):
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    try:
        count = messaging.mark_read(u, conversation_id)
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "updated": count}), 200
