from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.segments.common import service_error
from app.services.checkout import handle_order_webhook
from app.services.errors import ServiceError
from app.services.promotions import promotion_webhook

webhooks_bp = Blueprint("webhooks_bp", __name__, url_prefix="/api/webhooks")


def _dispatch(handler, name: str):
    raw = request.get_data() or b""
    signature = request.headers.get("Stripe-Signature") or ""
    try:
        body = handler(raw, signature)
    except ServiceError as e:
        current_app.logger.warning("webhook_rejected name=%s code=%s", name, e.code)
        return service_error(e)
    return jsonify(body), 200


@webhooks_bp.post("/stripe")
def stripe_order_webhook():
    return _dispatch(handle_order_webhook, "orders")


@webhooks_bp.post("/promotions")
def stripe_promotion_webhook():
    return _dispatch(promotion_webhook, "promotions")
