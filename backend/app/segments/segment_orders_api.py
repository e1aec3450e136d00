from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.extensions import db
from app.segments.common import auth_error, bad_request, json_body, service_error
from app.services import checkout as checkout_service
from app.services import orders as order_service
from app.services import refunds as refund_service
from app.services.errors import ServiceError
from app.services.order_lifecycle import lock_order
from app.services.payouts import confirm_delivery
from app.services.shipping import CARRIER_LABELS, update_tracking
from app.utils.auth import current_user, is_service_request
from app.utils.idempotency import lookup_response, store_response
from app.utils.observability import client_ip

orders_bp = Blueprint("orders_bp", __name__, url_prefix="/api")


def _first(payload: dict, *names):
    for name in names:
        if payload.get(name) not in (None, ""):
            return payload.get(name)
    return None


@orders_bp.post("/orders/checkout")
def create_checkout():
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    payload = json_body()
    listing_id = _first(payload, "listing_id", "listingId")
    if not listing_id:
        return bad_request("listing_id is required", "MISSING_FIELDS")

    try:
        listing_id = int(listing_id)
    except (TypeError, ValueError):
        return bad_request("listing_id must be an integer", "INVALID_LISTING_ID")

    idem = lookup_response(int(u.id), "orders.checkout", payload)
    if idem is not None and idem[0] != "miss":
        return jsonify(idem[1]), idem[2]
    try:
        body = checkout_service.create_checkout(
            u,
            listing_id,
            shipping_method=_first(payload, "shipping_method", "shippingMethod") or "standard",
            shipping_address=_first(payload, "shipping_address", "shippingAddress") or "",
            payment_provider=_first(payload, "payment_provider", "paymentProvider") or "stripe",
            paypal_order_id=_first(payload, "paypal_order_id", "paypalOrderId"),
        )
        response, status = {"ok": True, **body}, 201
    except ServiceError as e:
        db.session.rollback()
        response, status = e.to_dict(), e.status
    if idem is not None:
        store_response(idem[1], response, status)
    return jsonify(response), status


@orders_bp.post("/orders/verify-payment")
def verify_payment():
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    payload = json_body()
    order_ids = _first(payload, "order_ids", "orderIds") or []
    if not isinstance(order_ids, list):
        order_ids = [order_ids]
    try:
        body = checkout_service.verify_payment(
            u,
            order_ids,
            _first(payload, "paypal_order_id", "paypalOrderId"),
            ip_address=client_ip(),
        )
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, **body}), 200


@orders_bp.get("/orders")
def list_orders():
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    role = (request.args.get("role") or request.args.get("section") or "buying").strip().lower()
    rows = order_service.list_orders(u, role=role, status=(request.args.get("status") or "").strip().lower())
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200


@orders_bp.get("/orders/<int:order_id>")
def order_detail(order_id: int):
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    try:
        item = order_service.get_order(u, order_id)
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "order": item}), 200


@orders_bp.get("/shipping/carriers")
def carriers():
    return jsonify({"ok": True, "items": [{"key": k, "label": v} for k, v in CARRIER_LABELS.items()]}), 200


@orders_bp.post("/orders/tracking")
@orders_bp.post("/orders/<int:order_id>/tracking")
def add_tracking(order_id: int | None = None):
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    payload = json_body()
    try:
        body = update_tracking(
            u,
            order_id or _first(payload, "order_id", "orderId"),
            _first(payload, "tracking_number", "trackingNumber") or "",
            _first(payload, "carrier") or "",
        )
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, **body}), 200


@orders_bp.post("/orders/<int:order_id>/confirm-delivery")
def confirm(order_id: int):
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    try:
        body = confirm_delivery(u, order_id)
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, **body}), 200


@orders_bp.post("/orders/<int:order_id>/cancel")
def cancel(order_id: int):
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    try:
        order = order_service.cancel_order(u, order_id, json_body().get("reason") or "")
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "order": order.to_dict()}), 200


@orders_bp.post("/orders/<int:order_id>/cancel-pending")
def cancel_pending(order_id: int):
    u = current_user()
    if not is_service_request():
        denied = auth_error(u)
        if denied:
            return denied
    reason = (json_body().get("reason") or "Plata nu a fost finalizată").strip()
    try:
        order = lock_order(order_id)
        if not is_service_request() and int(order.buyer_id) != int(u.id) and not u.is_admin:
            db.session.rollback()
            return jsonify({"ok": False, "message": "Forbidden", "error": "FORBIDDEN"}), 403
        cancelled = checkout_service.cancel_pending_order(order, reason, actor={"type": "service" if is_service_request() else "buyer", "id": getattr(u, "id", None)})
        db.session.commit()
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "cancelled": cancelled, "order": order.to_dict()}), 200


@orders_bp.post("/orders/<int:order_id>/refund-request")
def request_refund(order_id: int):
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    payload = json_body()
    try:
        refund = refund_service.request_refund(u, order_id, payload.get("amount"), payload.get("reason") or "")
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "refund": refund.to_dict()}), 201


@orders_bp.post("/orders/<int:order_id>/returns")
def create_return(order_id: int):
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    payload = json_body()
    try:
        row = refund_service.create_return(u, order_id, payload.get("reason") or "", payload.get("description") or "")
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "return": row.to_dict()}), 201


@orders_bp.patch("/returns/<int:return_id>")
def update_return(return_id: int):
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    try:
        row = refund_service.update_return(u, return_id, json_body().get("status") or "")
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "return": row.to_dict()}), 200


@orders_bp.post("/orders/<int:order_id>/disputes")
def open_dispute(order_id: int):
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    try:
        dispute = refund_service.open_dispute(u, order_id, json_body().get("reason") or "")
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "dispute": dispute.to_dict()}), 201

