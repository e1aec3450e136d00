from __future__ import annotations

import json
from datetime import datetime

from app.extensions import db
from app.models import Order, OrderTransition
from app.services.errors import Conflict, NotFound


class OrderStatus:
    PENDING = "pending"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    DISPUTE_OPENED = "dispute_opened"
    REFUND_REQUESTED = "refund_requested"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"

    ALLOWED = {
        PENDING: {PENDING, PAID, CANCELLED},
        PAID: {PAID, SHIPPED, CANCELLED, DISPUTE_OPENED, REFUND_REQUESTED, REFUNDED, PARTIALLY_REFUNDED},
        SHIPPED: {SHIPPED, DELIVERED, DISPUTE_OPENED, REFUND_REQUESTED, REFUNDED, PARTIALLY_REFUNDED},
        DELIVERED: {DELIVERED, DISPUTE_OPENED, REFUND_REQUESTED, REFUNDED, PARTIALLY_REFUNDED},
        DISPUTE_OPENED: {DISPUTE_OPENED, DELIVERED, REFUNDED, PARTIALLY_REFUNDED},
        # A rejected refund request returns the order to where it was.
        REFUND_REQUESTED: {REFUND_REQUESTED, REFUNDED, PARTIALLY_REFUNDED, PAID, SHIPPED, DELIVERED},
        PARTIALLY_REFUNDED: {PARTIALLY_REFUNDED, REFUNDED},
        CANCELLED: {CANCELLED},
        REFUNDED: {REFUNDED},
    }

    CANCELLABLE = {PENDING, PAID}
    REFUNDABLE = {PAID, SHIPPED, DELIVERED, DISPUTE_OPENED, REFUND_REQUESTED, PARTIALLY_REFUNDED}


class OrderTransitionError(Conflict):
    pass


def _parse_actor(actor) -> tuple[str, int | None]:
    if isinstance(actor, dict):
        actor_type = str(actor.get("type") or "system")
        try:
            actor_id = int(actor["id"]) if actor.get("id") is not None else None
        except (TypeError, ValueError):
            actor_id = None
        return actor_type, actor_id
    return "system", None


def lock_order(order_id: int) -> Order:
    """Load an order with a row lock held until the surrounding commit."""
    order = (
        db.session.query(Order)
        .filter(Order.id == int(order_id))
        .with_for_update()
        .populate_existing()
        .first()
    )
    if order is None:
        raise NotFound("Comanda nu a fost găsită", code="ORDER_NOT_FOUND")
    return order


def find_transition(order_id: int, idempotency_key: str) -> OrderTransition | None:
    key = (idempotency_key or "").strip()[:160]
    if not key:
        return None
    return OrderTransition.query.filter_by(order_id=int(order_id), idempotency_key=key).first()


def transition_order(
    order: Order,
    to_status: str,
    *,
    idempotency_key: str,
    actor=None,
    reason: str = "",
    metadata: dict | None = None,
) -> tuple[OrderTransition, bool]:
    """Move ``order`` to ``to_status`` through the allowed map.

    Returns ``(transition, applied)``. A replayed idempotency key returns the
    recorded transition with ``applied=False`` and leaves the order untouched.
    Nothing is committed here; the caller commits the whole unit of work.
    """
    if order is None:
        raise ValueError("order required")
    key = (idempotency_key or "").strip()
    if not key:
        raise ValueError("idempotency_key required")

    existing = find_transition(int(order.id), key)
    if existing:
        return existing, False

    current = (order.status or OrderStatus.PENDING).strip().lower()
    target = (to_status or "").strip().lower()
    allowed = OrderStatus.ALLOWED.get(current, {current})
    if target not in allowed:
        raise OrderTransitionError(
            f"invalid_order_transition {current}->{target}",
            code="INVALID_ORDER_TRANSITION",
            extra={"from_status": current, "to_status": target},
        )

    actor_type, actor_id = _parse_actor(actor)
    row = OrderTransition(
        order_id=int(order.id),
        from_status=current,
        to_status=target,
        actor_type=actor_type[:32],
        actor_id=actor_id,
        idempotency_key=key[:160],
        reason=(reason or "")[:240],
        metadata_json=json.dumps(metadata or {}, default=str)[:4000],
        created_at=datetime.utcnow(),
    )
    order.status = target
    order.updated_at = datetime.utcnow()
    db.session.add(order)
    db.session.add(row)
    return row, True


def order_history(order_id: int) -> list[OrderTransition]:
    return (
        OrderTransition.query.filter_by(order_id=int(order_id))
        .order_by(OrderTransition.created_at.asc(), OrderTransition.id.asc())
        .all()
    )
