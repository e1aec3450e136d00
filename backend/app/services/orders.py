from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app

from app.extensions import db
from app.models import Listing, Order, User
from app.services.checkout import release_listing
from app.services.errors import Forbidden, NotFound, ServiceError
from app.services.notifications import notify
from app.services.order_lifecycle import OrderStatus, lock_order, order_history, transition_order
from app.utils.events import log_event

DEFAULT_CANCEL_WINDOW_HOURS = 24


def _cancel_window() -> timedelta:
    hours = int(current_app.config.get("ORDER_CANCEL_WINDOW_HOURS") or DEFAULT_CANCEL_WINDOW_HOURS)
    return timedelta(hours=hours)


def get_order(user: User, order_id: int) -> dict:
    order = db.session.get(Order, int(order_id))
    if order is None:
        raise NotFound("Comanda nu a fost găsită", code="ORDER_NOT_FOUND")
    if int(user.id) not in (int(order.buyer_id), int(order.seller_id)) and not user.is_admin:
        raise Forbidden("Nu ai acces la această comandă", code="FORBIDDEN")
    item = order.to_dict()
    listing = db.session.get(Listing, int(order.listing_id))
    item["listing"] = listing.to_dict() if listing else None
    item["history"] = [t.to_dict() for t in order_history(int(order.id))]
    return item


def list_orders(user: User, *, role: str = "buying", status: str = "") -> list[Order]:
    q = Order.query
    if role == "selling":
        q = q.filter(Order.seller_id == int(user.id))
    else:
        q = q.filter(Order.buyer_id == int(user.id))
    if status:
        q = q.filter(Order.status == status)
    return q.order_by(Order.created_at.desc()).all()


def cancel_order(user: User, order_id: int, reason: str = "", *, now: datetime | None = None) -> Order:
    now = now or datetime.utcnow()
    order = lock_order(order_id)
    if int(user.id) not in (int(order.buyer_id), int(order.seller_id)):
        raise Forbidden("Nu poți anula această comandă", code="FORBIDDEN")
    if order.status not in OrderStatus.CANCELLABLE:
        raise ServiceError(f"Comanda nu poate fi anulată (status: {order.status})", code="INVALID_ORDER_STATUS")
    if order.created_at and now - order.created_at > _cancel_window():
        raise ServiceError("Perioada de anulare de 24 de ore a expirat", code="CANCEL_WINDOW_EXPIRED")

    reason = (reason or "").strip() or "Anulată de utilizator"
    transition_order(
        order,
        OrderStatus.CANCELLED,
        idempotency_key=f"order:{order.id}:cancelled",
        actor={"type": "seller" if int(user.id) == int(order.seller_id) else "buyer", "id": user.id},
        reason=reason,
    )
    order.cancelled_at = now
    order.cancel_reason = reason[:240]
    release_listing(int(order.listing_id), exclude_order_id=int(order.id))
    notify(
        int(order.buyer_id),
        "order_cancelled",
        "Comandă anulată",
        f"Comanda #{order.id} a fost anulată. Motiv: {reason}",
        {"order_id": int(order.id)},
    )
    if int(user.id) == int(order.buyer_id):
        notify(int(order.seller_id), "order_cancelled", "Comandă anulată", f"Cumpărătorul a anulat comanda #{order.id}.", {"order_id": int(order.id)})
    log_event("order_cancelled", actor_user_id=user.id, subject_type="order", subject_id=order.id, metadata={"reason": reason})
    db.session.commit()
    return order
