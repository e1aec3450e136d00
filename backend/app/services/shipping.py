from __future__ import annotations

from datetime import datetime
from urllib.parse import quote_plus

from app.extensions import db
from app.models import Listing, User
from app.services.errors import Forbidden, ServiceError
from app.services.notifications import email_user, html_paragraphs, notify
from app.services.order_lifecycle import OrderStatus, lock_order, transition_order
from app.utils.events import log_event

CARRIER_LABELS = {
    "fan_courier": "FAN Courier",
    "sameday": "Sameday",
    "cargus": "Cargus",
    "gls": "GLS",
    "posta_romana": "Poșta Română",
    "royal_mail": "Royal Mail",
    "dhl": "DHL",
    "ups": "UPS",
    "fedex": "FedEx",
    "hermes": "Evri (Hermes)",
    "dpd": "DPD",
    "yodel": "Yodel",
    "other": "Curier",
}


def carrier_label(carrier: str | None) -> str:
    key = (carrier or "").strip().lower()
    return CARRIER_LABELS.get(key) or (carrier or "").strip() or CARRIER_LABELS["other"]


def tracking_url(carrier: str | None, tracking_number: str) -> str:
    return f"https://www.google.com/search?q={quote_plus(carrier_label(carrier))}+tracking+{quote_plus(tracking_number)}"


def update_tracking(seller: User, order_id, tracking_number: str, carrier: str) -> dict:
    tracking_number = (tracking_number or "").strip()
    carrier = (carrier or "").strip().lower()
    if not order_id or not tracking_number or not carrier:
        raise ServiceError("Missing required fields: orderId, trackingNumber, carrier", code="MISSING_FIELDS")
    try:
        order_id = int(order_id)
    except (TypeError, ValueError) as e:
        raise ServiceError("orderId must be an integer", code="INVALID_ORDER_ID") from e

    order = lock_order(order_id)
    if int(order.seller_id) != int(seller.id):
        raise Forbidden("Only the seller can update tracking", code="FORBIDDEN")
    if order.status != OrderStatus.PAID:
        raise ServiceError(f"Order must be paid to add tracking (current: {order.status})", code="INVALID_ORDER_STATUS")

    transition_order(
        order,
        OrderStatus.SHIPPED,
        idempotency_key=f"order:{order.id}:shipped",
        actor={"type": "seller", "id": seller.id},
        reason="tracking_added",
        metadata={"carrier": carrier, "tracking_number": tracking_number},
    )
    order.tracking_number = tracking_number[:120]
    order.carrier = carrier[:32]
    order.shipped_at = datetime.utcnow()

    label = carrier_label(carrier)
    url = tracking_url(carrier, tracking_number)
    listing = db.session.get(Listing, int(order.listing_id))
    title = listing.title if listing is not None else f"#{order.listing_id}"
    notify(
        int(order.buyer_id),
        "order_shipped",
        "Comanda ta a fost expediată!",
        f"„{title}” a fost expediat prin {label}. AWB: {tracking_number}",
        {"order_id": int(order.id), "tracking_number": tracking_number, "carrier": carrier, "tracking_url": url},
    )
    log_event("order_shipped", actor_user_id=seller.id, subject_type="order", subject_id=order.id, metadata={"carrier": carrier})
    db.session.commit()

    buyer = db.session.get(User, int(order.buyer_id))
    emailed = email_user(
        buyer,
        f"Comanda ta a fost expediată - {title}",
        html_paragraphs(
            f"Vânzătorul a expediat „{title}” prin {label}.",
            f"Număr de urmărire: {tracking_number}",
            f"Urmărește coletul: {url}",
        ),
    )
    return {"success": True, "order": order.to_dict(), "tracking_url": url, "carrier_label": label, "email_sent": emailed}
