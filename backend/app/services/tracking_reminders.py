from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, timedelta

from flask import current_app

from app.extensions import db
from app.models import Listing, Order, PlatformEvent, User
from app.services.notifications import email_user, html_paragraphs, notify, notify_admins
from app.services.order_lifecycle import OrderStatus
from app.utils.events import log_event

DEFAULT_REMINDER_HOURS = 48


def _reminder_key(order_id: int, day: str) -> str:
    return f"tracking_reminder:{int(order_id)}:{day}"


def send_tracking_reminders(*, now: datetime | None = None) -> dict:
    """Remind sellers about paid/pending orders still missing an AWB; once per order per day."""
    now = now or datetime.utcnow()
    hours = int(current_app.config.get("TRACKING_REMINDER_HOURS") or DEFAULT_REMINDER_HOURS)
    cutoff = now - timedelta(hours=hours)
    day = now.strftime("%Y-%m-%d")

    rows = (
        db.session.query(Order, Listing.title)
        .outerjoin(Listing, Listing.id == Order.listing_id)
        .filter(
            Order.status.in_((OrderStatus.PAID, OrderStatus.PENDING)),
            Order.tracking_number.is_(None),
            Order.created_at < cutoff,
        )
        .order_by(Order.seller_id.asc(), Order.created_at.asc())
        .all()
    )
    by_seller: "OrderedDict[int, dict]" = OrderedDict()
    for order, title in rows:
        key = _reminder_key(order.id, day)
        if PlatformEvent.query.filter_by(idempotency_key=key).first() is not None:
            continue
        entry = by_seller.setdefault(int(order.seller_id), {"count": 0, "titles": [], "order_ids": []})
        entry["count"] += 1
        entry["order_ids"].append(int(order.id))
        title = title or "Produs"
        if title not in entry["titles"]:
            entry["titles"].append(title)

    if not by_seller:
        return {"message": "No orders missing tracking", "notified": 0, "ordersAffected": 0}

    total_orders = 0
    for seller_id, data in by_seller.items():
        product_list = ", ".join(data["titles"][:3])
        extra = f" și alte {len(data['titles']) - 3}" if len(data["titles"]) > 3 else ""
        notify(
            seller_id,
            "tracking_reminder",
            f"⚠️ {data['count']} comenzi fără AWB",
            f"Ai {data['count']} comenzi care așteaptă numărul de urmărire: {product_list}{extra}. "
            "Adaugă AWB-ul pentru a evita întârzierile și protecția PayPal.",
            {"orders_count": data["count"], "order_ids": data["order_ids"]},
        )
        for order_id in data["order_ids"]:
            log_event("tracking_reminder_sent", subject_type="order", subject_id=order_id, idempotency_key=_reminder_key(order_id, day))
        total_orders += data["count"]

    notify_admins(
        "tracking_reminder",
        f"🚨 {total_orders} comenzi fără AWB",
        f"{len(by_seller)} vânzători au {total_orders} comenzi neexpediate de peste {hours}h. Verifică panoul de control.",
        {"admin_notification": True, "sellers_affected": len(by_seller), "orders_affected": total_orders},
    )
    db.session.commit()

    for seller_id, data in by_seller.items():
        email_user(
            db.session.get(User, seller_id),
            "Comenzi care așteaptă numărul de urmărire",
            html_paragraphs(
                f"Ai {data['count']} comenzi fără număr de urmărire (AWB).",
                "Produse: " + ", ".join(data["titles"]),
                "Adaugă AWB-ul din secțiunea Comenzi > Vânzări.",
            ),
        )
    current_app.logger.info("tracking_reminders_sent sellers=%s orders=%s", len(by_seller), total_orders)
    return {
        "message": f"Notified {len(by_seller)} sellers and admins about {total_orders} orders missing tracking",
        "notified": len(by_seller),
        "ordersAffected": total_orders,
    }
