"""Order checkout, payment webhooks and PayPal verification."""
from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from app.extensions import db
from app.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError, ProviderError
from app.integrations.payments.base import LineItem
from app.integrations.payments.factory import build_payments_provider, build_paypal_provider, webhook_secret
from app.models import FinancialAuditLog, Listing, Order, User, WebhookEvent
from app.services.errors import NotFound, ServiceError
from app.services.fees import compute_order_fees
from app.services.indexing import site_url
from app.services.notifications import email_user, html_paragraphs, notify
from app.services.order_lifecycle import OrderStatus, lock_order, transition_order
from app.utils.events import log_event, log_financial_action
from app.utils.integration_settings import get_settings

SHIPPING_METHODS = ("standard", "express", "overnight", "pickup")
PAYMENT_PROVIDERS = ("stripe", "paypal")
ORDER_WEBHOOK_PROVIDER = "stripe"
DEFAULT_VERIFY_ATTEMPTS_PER_HOUR = 15


def _currency() -> str:
    return str(current_app.config.get("MARKETPLACE_CURRENCY") or "ron").lower()


def payments_provider():
    try:
        return build_payments_provider(get_settings())
    except IntegrationDisabledError as e:
        raise ServiceError("Plățile sunt dezactivate momentan", status=503, code="PAYMENTS_DISABLED") from e
    except IntegrationMisconfiguredError as e:
        current_app.logger.error("payments_misconfigured reason=%s", e)
        raise ServiceError("Payment service not configured", status=500, code="PAYMENTS_MISCONFIGURED") from e


def release_listing(listing_id: int, *, exclude_order_id: int | None = None) -> bool:
    """Put a listing back on sale unless another live order still holds it."""
    listing = db.session.get(Listing, int(listing_id))
    if listing is None:
        return False
    holders = Order.query.filter(
        Order.listing_id == int(listing_id),
        Order.status.in_((OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.DELIVERED)),
    )
    if exclude_order_id is not None:
        holders = holders.filter(Order.id != int(exclude_order_id))
    if holders.count() > 0:
        return False
    listing.is_sold = False
    listing.is_active = True
    listing.updated_at = datetime.utcnow()
    return True


def create_checkout(
    buyer: User,
    listing_id: int,
    *,
    shipping_method: str = "standard",
    shipping_address: str = "",
    payment_provider: str = "stripe",
    paypal_order_id: str | None = None,
) -> dict:
    listing = db.session.get(Listing, int(listing_id)) if listing_id else None
    if listing is None:
        raise NotFound("Anunțul nu a fost găsit", code="LISTING_NOT_FOUND")
    if not listing.is_active or listing.is_sold:
        raise ServiceError("Anunțul nu mai este disponibil", code="LISTING_UNAVAILABLE")
    if int(listing.seller_id) == int(buyer.id):
        raise ServiceError("Nu poți cumpăra propriul anunț", code="OWN_LISTING")
    shipping_method = (shipping_method or "standard").strip().lower()
    if shipping_method not in SHIPPING_METHODS:
        raise ServiceError("Metodă de livrare invalidă", code="INVALID_SHIPPING_METHOD")
    payment_provider = (payment_provider or "stripe").strip().lower()
    if payment_provider not in PAYMENT_PROVIDERS:
        raise ServiceError("Metodă de plată invalidă", code="INVALID_PAYMENT_PROVIDER")
    if payment_provider == "paypal" and not (paypal_order_id or "").strip():
        raise ServiceError("paypal_order_id is required", code="MISSING_FIELDS")

    fees = compute_order_fees(float(listing.price or 0), shipping_method)
    amounts = fees.as_major()
    order = Order(
        buyer_id=int(buyer.id),
        seller_id=int(listing.seller_id),
        listing_id=int(listing.id),
        status=OrderStatus.PENDING,
        amount=amounts["item"],
        buyer_fee=amounts["buyer_fee"],
        shipping_cost=amounts["shipping"],
        seller_commission=amounts["seller_commission"],
        total_amount=amounts["total"],
        currency=_currency(),
        shipping_method=shipping_method,
        shipping_address=(shipping_address or "").strip() or None,
        payment_provider=payment_provider,
        paypal_order_id=(paypal_order_id or "").strip() or None,
    )
    db.session.add(order)
    db.session.flush()
    transition_order(order, OrderStatus.PENDING, idempotency_key=f"order:{order.id}:created", actor={"type": "buyer", "id": buyer.id}, reason="order_created")

    body = {"order_id": int(order.id), "order": None, "url": None, "sessionId": None}
    if payment_provider == "stripe":
        provider = payments_provider()
        items = [LineItem(name=listing.title, amount_minor=fees.item_minor)]
        if fees.buyer_fee_minor > 0:
            items.append(LineItem(name="Taxă de protecție cumpărător", amount_minor=fees.buyer_fee_minor))
        if fees.shipping_minor > 0:
            items.append(LineItem(name=f"Livrare ({shipping_method})", amount_minor=fees.shipping_minor))
        try:
            session = provider.create_checkout_session(
                line_items=items,
                currency=order.currency,
                success_url=f"{site_url()}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}&order_id={order.id}",
                cancel_url=f"{site_url()}/listing/{listing.id}",
                metadata={
                    "order_id": str(order.id),
                    "listing_id": str(listing.id),
                    "buyer_id": str(buyer.id),
                    "transfer_group": f"ORDER_{order.id}",
                },
                customer_email=buyer.email,
            )
        except ProviderError as e:
            db.session.rollback()
            current_app.logger.warning("checkout_session_failed listing_id=%s code=%s", listing_id, e.code)
            raise ServiceError("Nu am putut iniția plata", status=502, code=e.code) from e
        order.checkout_session_id = session.session_id
        body["url"] = session.url
        body["sessionId"] = session.session_id

    log_event("order_created", actor_user_id=buyer.id, subject_type="order", subject_id=order.id, metadata={"total": order.total_amount, "provider": payment_provider})
    db.session.commit()
    body["order"] = order.to_dict()
    return body


def mark_order_paid(order: Order, *, idempotency_key: str, actor=None, payment_intent_id: str | None = None) -> bool:
    """Move a pending order to paid and mark its listing sold; the caller commits."""
    _row, applied = transition_order(order, OrderStatus.PAID, idempotency_key=idempotency_key, actor=actor, reason="payment_confirmed")
    if not applied:
        return False
    if payment_intent_id:
        order.payment_intent_id = str(payment_intent_id)[:255]
    listing = db.session.get(Listing, int(order.listing_id))
    if listing is not None:
        listing.is_sold = True
        listing.updated_at = datetime.utcnow()
    title = listing.title if listing is not None else f"#{order.listing_id}"
    notify(
        int(order.seller_id),
        "new_order",
        "Comandă nouă!",
        f"Ai vândut „{title}”. Expediază produsul și adaugă numărul de urmărire.",
        {"order_id": int(order.id), "listing_id": int(order.listing_id)},
    )
    log_financial_action("order_paid", user_id=order.buyer_id, order_id=order.id, amount=order.total_amount, details={"key": idempotency_key})
    return True


def _email_new_order(order: Order) -> None:
    seller = db.session.get(User, int(order.seller_id))
    listing = db.session.get(Listing, int(order.listing_id))
    email_user(
        seller,
        "Comandă nouă pe MarketPlace",
        html_paragraphs(
            f"Ai primit o comandă nouă pentru „{listing.title if listing else order.listing_id}”.",
            f"Total: {order.amount:.2f} {order.currency.upper()}",
            "Te rugăm să expediezi produsul și să adaugi numărul de urmărire.",
        ),
    )


def cancel_pending_order(order: Order, reason: str, *, actor=None) -> bool:
    """Cancel an unpaid order and free its listing; the caller commits."""
    if (order.status or "") != OrderStatus.PENDING:
        return False
    transition_order(order, OrderStatus.CANCELLED, idempotency_key=f"order:{order.id}:cancel_pending", actor=actor, reason=reason)
    order.cancelled_at = datetime.utcnow()
    order.cancel_reason = (reason or "")[:240]
    release_listing(int(order.listing_id), exclude_order_id=int(order.id))
    return True


def record_webhook_event(provider: str, event: dict) -> WebhookEvent | None:
    event_id = str(event.get("id") or "").strip()[:128]
    if not event_id:
        raise ServiceError("Webhook event without id", code="INVALID_PAYLOAD")
    if WebhookEvent.query.filter_by(provider=provider, event_id=event_id).first() is not None:
        return None
    row = WebhookEvent(provider=provider, event_id=event_id, event_type=str(event.get("type") or "")[:80])
    try:
        with db.session.begin_nested():
            db.session.add(row)
    except IntegrityError:
        return None
    return row


def construct_event(kind: str, payload: bytes, signature: str) -> tuple[object, dict]:
    provider = payments_provider()
    try:
        secret = webhook_secret(kind)
    except IntegrationMisconfiguredError as e:
        current_app.logger.error("webhook_secret_missing kind=%s", kind)
        raise ServiceError("Webhook secret not configured", status=500, code="WEBHOOK_MISCONFIGURED") from e
    try:
        event = provider.construct_webhook_event(payload=payload, signature=signature or "", secret=secret)
    except ProviderError as e:
        current_app.logger.warning("webhook_signature_invalid kind=%s code=%s", kind, e.code)
        raise ServiceError("Invalid signature", code="INVALID_SIGNATURE") from e
    return provider, event


def handle_order_webhook(payload: bytes, signature: str) -> dict:
    _provider, event = construct_event("orders", payload, signature)
    row = record_webhook_event(ORDER_WEBHOOK_PROVIDER, event)
    if row is None:
        db.session.rollback()
        return {"received": True, "duplicate": True}

    obj = ((event.get("data") or {}).get("object")) or {}
    metadata = obj.get("metadata") or {}
    paid_order = None
    if event.get("type") == "checkout.session.completed" and metadata.get("order_id"):
        try:
            order = lock_order(int(metadata["order_id"]))
        except (TypeError, ValueError):
            # NotFound is a ValueError too
            order = None
        if order is None:
            row.status = "ignored"
            row.error = "order_not_found"
        elif order.status == OrderStatus.PENDING:
            mark_order_paid(
                order,
                idempotency_key=f"webhook:{row.event_id}",
                actor={"type": "webhook"},
                payment_intent_id=obj.get("payment_intent"),
            )
            row.status = "processed"
            paid_order = order
        else:
            row.status = "ignored"
            row.error = f"order_status={order.status}"
    else:
        row.status = "ignored"
    row.processed_at = datetime.utcnow()
    db.session.commit()

    if paid_order is not None:
        _email_new_order(paid_order)
    return {"received": True, "status": row.status}


def _verify_attempt_limit() -> int:
    return int(current_app.config.get("VERIFY_PAYMENT_MAX_ATTEMPTS_PER_HOUR") or DEFAULT_VERIFY_ATTEMPTS_PER_HOUR)


def verify_payment(user: User, order_ids: list, paypal_order_id: str | None = None, *, ip_address: str | None = None) -> dict:
    since = datetime.utcnow() - timedelta(hours=1)
    recent = FinancialAuditLog.query.filter(
        FinancialAuditLog.user_id == int(user.id),
        FinancialAuditLog.action == "verify_payment",
        FinancialAuditLog.created_at >= since,
    ).count()
    log_financial_action(
        "verify_payment",
        user_id=user.id,
        ip_address=ip_address,
        details={"order_ids": order_ids, "paypal_order_id": paypal_order_id, "attempt": recent + 1},
    )
    db.session.commit()
    if recent >= _verify_attempt_limit():
        raise ServiceError("Prea multe încercări. Încearcă din nou mai târziu.", status=429, code="RATE_LIMITED")

    try:
        ids = sorted({int(x) for x in (order_ids or [])})
    except (TypeError, ValueError) as e:
        raise ServiceError("order_ids must be integers", code="INVALID_ORDER_IDS") from e
    if not ids:
        raise ServiceError("order_ids is required", code="MISSING_FIELDS")

    try:
        paypal = build_paypal_provider(get_settings())
    except IntegrationDisabledError as e:
        raise ServiceError("PayPal nu este activat", status=503, code="PAYPAL_DISABLED") from e
    except IntegrationMisconfiguredError as e:
        raise ServiceError("PayPal service not configured", status=500, code="PAYPAL_MISCONFIGURED") from e

    results = []
    captures = {}
    paid_orders = []
    for order_id in ids:
        order = db.session.get(Order, order_id)
        if order is None or int(order.buyer_id) != int(user.id):
            results.append({"order_id": order_id, "status": "not_found"})
            continue
        order = lock_order(order_id)
        if order.status != OrderStatus.PENDING:
            results.append({"order_id": order_id, "status": order.status, "success": order.status != OrderStatus.CANCELLED})
            continue
        ref = (paypal_order_id or order.paypal_order_id or "").strip()
        if not ref:
            results.append({"order_id": order_id, "status": "pending", "success": False, "error": "MISSING_PAYPAL_ORDER"})
            continue
        if ref not in captures:
            try:
                captures[ref] = paypal.capture_order(ref)
            except ProviderError as e:
                current_app.logger.warning("paypal_capture_failed order_id=%s code=%s", order_id, e.code)
                captures[ref] = None
                results.append({"order_id": order_id, "status": "pending", "success": False, "error": e.code})
                continue
        capture = captures[ref]
        if capture is None:
            results.append({"order_id": order_id, "status": "pending", "success": False, "error": "CAPTURE_FAILED"})
            continue
        order.paypal_order_id = ref
        if capture.captured:
            mark_order_paid(order, idempotency_key=f"paypal:{ref}:{order.id}", actor={"type": "buyer", "id": user.id}, payment_intent_id=capture.capture_id or None)
            paid_orders.append(order)
            results.append({"order_id": order_id, "status": OrderStatus.PAID, "success": True, "capture_status": capture.status})
        else:
            cancel_pending_order(order, f"PayPal capture {capture.status}", actor={"type": "buyer", "id": user.id})
            results.append({"order_id": order_id, "status": OrderStatus.CANCELLED, "success": False, "capture_status": capture.status})
        log_financial_action(
            "verify_payment_result",
            user_id=user.id,
            order_id=order.id,
            amount=order.total_amount,
            ip_address=ip_address,
            details={"capture_status": capture.status},
        )
    db.session.commit()

    for order in paid_orders:
        _email_new_order(order)
    return {"success": all(r.get("success") for r in results), "results": results}


def order_totals_preview(listing_id: int, shipping_method: str = "standard") -> dict:
    listing = db.session.get(Listing, int(listing_id))
    if listing is None:
        raise NotFound("Anunțul nu a fost găsit", code="LISTING_NOT_FOUND")
    fees = compute_order_fees(float(listing.price or 0), shipping_method)
    body = fees.as_major()
    body["currency"] = _currency()
    body["total_minor"] = fees.total_minor
    return body
