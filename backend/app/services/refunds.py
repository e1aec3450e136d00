"""Refund requests and processing, returns and disputes."""
from __future__ import annotations

from datetime import datetime

from flask import current_app

from app.extensions import db
from app.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError, ProviderError
from app.integrations.payments.factory import build_payments_provider
from app.models import Dispute, Order, Payout, Refund, ReturnRequest, User
from app.services.checkout import release_listing
from app.services.errors import Conflict, Forbidden, NotFound, ServiceError
from app.services.notifications import notify, notify_admins
from app.services.order_lifecycle import OrderStatus, find_transition, lock_order, transition_order
from app.services.payouts import deliver_with_payout
from app.utils.events import log_event, log_financial_action
from app.utils.integration_settings import get_settings
from app.utils.money import money_major_to_minor, money_minor_to_major

RETURN_TRANSITIONS = {
    "pending": {"approved", "rejected", "cancelled"},
    "approved": {"completed", "cancelled"},
    "rejected": set(),
    "completed": set(),
    "cancelled": set(),
}
DISPUTABLE = {OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.DELIVERED}


def _party(order: Order, user: User) -> str:
    if int(user.id) == int(order.buyer_id):
        return "buyer"
    if int(user.id) == int(order.seller_id):
        return "seller"
    return ""


def _remaining_minor(order: Order) -> int:
    return max(0, money_major_to_minor(order.total_amount) - money_major_to_minor(order.refund_amount or 0))


def _parse_refund_amount(raw, order: Order) -> float:
    remaining = money_minor_to_major(_remaining_minor(order))
    if raw in (None, ""):
        return remaining
    try:
        amount = round(float(raw), 2)
    except (TypeError, ValueError) as e:
        raise ServiceError("Suma este invalidă", code="INVALID_AMOUNT") from e
    if amount <= 0:
        raise ServiceError("Suma trebuie să fie mai mare decât 0", code="INVALID_AMOUNT")
    if money_major_to_minor(amount) > _remaining_minor(order):
        raise ServiceError(f"Suma depășește valoarea rambursabilă ({remaining:.2f})", code="AMOUNT_TOO_HIGH")
    return amount


def request_refund(user: User, order_id: int, amount=None, reason: str = "") -> Refund:
    order = lock_order(order_id)
    party = _party(order, user)
    if not party or user.is_admin:
        raise Forbidden("Doar cumpărătorul sau vânzătorul pot cere o rambursare", code="FORBIDDEN")
    if order.status not in OrderStatus.REFUNDABLE or order.status == OrderStatus.REFUND_REQUESTED:
        raise ServiceError(f"Comanda nu poate fi rambursată (status: {order.status})", code="INVALID_ORDER_STATUS")
    if Refund.query.filter_by(order_id=int(order.id), status="pending").first() is not None:
        raise Conflict("Există deja o cerere de rambursare în așteptare", code="REFUND_PENDING")

    amount = _parse_refund_amount(amount, order)
    refund = Refund(order_id=int(order.id), requested_by=int(user.id), amount=amount, reason=(reason or "").strip() or None)
    db.session.add(refund)
    db.session.flush()
    transition_order(
        order,
        OrderStatus.REFUND_REQUESTED,
        idempotency_key=f"refund:{refund.id}:requested",
        actor={"type": party, "id": user.id},
        reason=reason or "refund_requested",
        metadata={"amount": amount},
    )
    order.refund_status = "pending_approval"

    other = order.seller_id if party == "buyer" else order.buyer_id
    notify(int(other), "refund_request", "Cerere de rambursare", f"S-a cerut o rambursare de {amount:.2f} pentru comanda #{order.id}.", {"order_id": int(order.id), "refund_id": int(refund.id)})
    notify_admins("refund_request", "Cerere de rambursare nouă", f"Comanda #{order.id}: {amount:.2f}", {"order_id": int(order.id), "refund_id": int(refund.id)})
    log_financial_action("refund_requested", user_id=user.id, order_id=order.id, amount=amount, details={"reason": reason})
    db.session.commit()
    return refund


def _apply_refund(order: Order, refund: Refund, amount: float, *, actor: User) -> Refund:
    """Refund ``amount`` on ``order`` through the processor; the caller commits."""
    full = money_major_to_minor(amount) >= _remaining_minor(order)
    refund.status = "processing"
    if order.payment_intent_id:
        try:
            provider = build_payments_provider(get_settings())
            result = provider.create_refund(
                payment_intent_id=order.payment_intent_id,
                amount_minor=money_major_to_minor(amount),
                metadata={"order_id": str(order.id), "refund_id": str(refund.id)},
            )
        except (IntegrationDisabledError, IntegrationMisconfiguredError) as e:
            raise ServiceError("Payment service not configured", status=500, code="PAYMENTS_MISCONFIGURED") from e
        except ProviderError as e:
            current_app.logger.warning("refund_provider_failed order_id=%s code=%s", order.id, e.code)
            raise ServiceError("Rambursarea a eșuat la procesator", status=502, code=e.code) from e
        refund.provider_ref = result.refund_id

    target = OrderStatus.REFUNDED if full else OrderStatus.PARTIALLY_REFUNDED
    transition_order(
        order,
        target,
        idempotency_key=f"refund:{refund.id}:processed",
        actor={"type": "admin", "id": actor.id},
        reason=refund.reason or "refund_processed",
        metadata={"amount": amount},
    )
    order.refund_amount = money_minor_to_major(money_major_to_minor(order.refund_amount or 0) + money_major_to_minor(amount))
    order.refund_status = "refunded" if full else "partially_refunded"

    payout = Payout.query.filter_by(order_id=int(order.id)).first()
    if payout is not None and payout.status == "pending":
        payout.status = "cancelled"
        payout.failure_reason = "order_refunded"
        order.payout_status = "cancelled"
    if full:
        release_listing(int(order.listing_id), exclude_order_id=int(order.id))

    refund.amount = amount
    refund.status = "completed"
    refund.processed_by = int(actor.id)
    refund.processed_at = datetime.utcnow()
    message = f"S-a procesat o rambursare de {amount:.2f} {order.currency.upper()} pentru comanda #{order.id}."
    notify(int(order.buyer_id), "refund", "Rambursare procesată", message, {"order_id": int(order.id), "refund_id": int(refund.id)})
    notify(int(order.seller_id), "refund", "Rambursare procesată", message, {"order_id": int(order.id), "refund_id": int(refund.id)})
    log_financial_action("refund_processed", user_id=actor.id, order_id=order.id, amount=amount, details={"full": full, "provider_ref": refund.provider_ref})
    return refund


def process_refund(admin: User, *, refund_id: int | None = None, order_id: int | None = None, amount=None, reason: str = "") -> Refund:
    refund = None
    if refund_id:
        refund = db.session.get(Refund, int(refund_id))
        if refund is None:
            raise NotFound("Rambursarea nu a fost găsită", code="REFUND_NOT_FOUND")
        if refund.status not in ("pending", "processing"):
            raise ServiceError("Rambursarea a fost deja procesată", code="REFUND_ALREADY_PROCESSED")
        order_id = refund.order_id
    if not order_id:
        raise ServiceError("refund_id or order_id is required", code="MISSING_FIELDS")

    order = lock_order(order_id)
    if order.status == OrderStatus.REFUNDED:
        raise ServiceError("Comanda a fost deja rambursată", code="ALREADY_REFUNDED")
    if order.status not in OrderStatus.REFUNDABLE:
        raise ServiceError(f"Comanda nu poate fi rambursată (status: {order.status})", code="INVALID_ORDER_STATUS")
    if refund is None:
        refund = Refund.query.filter_by(order_id=int(order.id), status="pending").first()
    if refund is None:
        refund = Refund(order_id=int(order.id), requested_by=int(admin.id), amount=0.0, reason=(reason or "").strip() or None)
        db.session.add(refund)
        db.session.flush()

    if amount in (None, "") and refund.amount:
        amount = refund.amount
    amount = _parse_refund_amount(amount, order)
    _apply_refund(order, refund, amount, actor=admin)
    db.session.commit()
    return refund


def reject_refund(admin: User, refund_id: int, note: str = "") -> Refund:
    refund = db.session.get(Refund, int(refund_id))
    if refund is None:
        raise NotFound("Rambursarea nu a fost găsită", code="REFUND_NOT_FOUND")
    if refund.status != "pending":
        raise ServiceError("Rambursarea a fost deja procesată", code="REFUND_ALREADY_PROCESSED")
    order = lock_order(refund.order_id)
    requested = find_transition(int(order.id), f"refund:{refund.id}:requested")
    if requested is not None and order.status == OrderStatus.REFUND_REQUESTED:
        transition_order(
            order,
            requested.from_status,
            idempotency_key=f"refund:{refund.id}:rejected",
            actor={"type": "admin", "id": admin.id},
            reason=note or "refund_rejected",
        )
    order.refund_status = "rejected"
    refund.status = "rejected"
    refund.processed_by = int(admin.id)
    refund.processed_at = datetime.utcnow()
    notify(int(refund.requested_by), "refund", "Rambursare respinsă", f"Cererea de rambursare pentru comanda #{order.id} a fost respinsă. {note}".strip(), {"order_id": int(order.id)})
    log_financial_action("refund_rejected", user_id=admin.id, order_id=order.id, amount=refund.amount, details={"note": note})
    db.session.commit()
    return refund


def create_return(buyer: User, order_id: int, reason: str, description: str = "") -> ReturnRequest:
    reason = (reason or "").strip()
    if not reason:
        raise ServiceError("reason is required", code="MISSING_FIELDS")
    order = lock_order(order_id)
    if int(order.buyer_id) != int(buyer.id):
        raise Forbidden("Doar cumpărătorul poate cere un retur", code="FORBIDDEN")
    if order.status != OrderStatus.DELIVERED:
        raise ServiceError("Returul se poate cere doar pentru comenzi livrate", code="INVALID_ORDER_STATUS")
    open_return = ReturnRequest.query.filter(
        ReturnRequest.order_id == int(order.id), ReturnRequest.status.in_(("pending", "approved"))
    ).first()
    if open_return is not None:
        raise Conflict("Există deja un retur deschis pentru această comandă", code="RETURN_EXISTS")

    row = ReturnRequest(
        order_id=int(order.id),
        buyer_id=int(order.buyer_id),
        seller_id=int(order.seller_id),
        reason=reason[:120],
        description=(description or "").strip() or None,
    )
    db.session.add(row)
    db.session.flush()
    notify(int(order.seller_id), "return_request", "Cerere de retur", f"Cumpărătorul a cerut returul comenzii #{order.id}: {reason}", {"order_id": int(order.id), "return_id": int(row.id)})
    db.session.commit()
    return row


def update_return(user: User, return_id: int, status: str) -> ReturnRequest:
    row = db.session.get(ReturnRequest, int(return_id))
    if row is None:
        raise NotFound("Returul nu a fost găsit", code="RETURN_NOT_FOUND")
    status = (status or "").strip().lower()
    if status not in RETURN_TRANSITIONS:
        raise ServiceError("Status invalid", code="INVALID_STATUS")
    is_buyer = int(user.id) == int(row.buyer_id)
    if not (user.is_admin or int(user.id) == int(row.seller_id) or (is_buyer and status == "cancelled")):
        raise Forbidden("Nu poți modifica acest retur", code="FORBIDDEN")
    if status not in RETURN_TRANSITIONS.get(row.status, set()):
        raise ServiceError(f"Tranziție invalidă {row.status}->{status}", code="INVALID_RETURN_TRANSITION")

    row.status = status
    row.updated_at = datetime.utcnow()
    if not is_buyer:
        notify(int(row.buyer_id), "return_update", "Actualizare retur", f"Returul pentru comanda #{row.order_id} este acum: {status}.", {"order_id": int(row.order_id), "return_id": int(row.id)})
    db.session.commit()
    return row


def open_dispute(user: User, order_id: int, reason: str) -> Dispute:
    reason = (reason or "").strip()
    if not reason:
        raise ServiceError("reason is required", code="MISSING_FIELDS")
    order = lock_order(order_id)
    party = _party(order, user)
    if not party:
        raise Forbidden("Nu ai acces la această comandă", code="FORBIDDEN")
    if order.status not in DISPUTABLE:
        raise ServiceError(f"Nu se poate deschide o dispută (status: {order.status})", code="INVALID_ORDER_STATUS")
    if Dispute.query.filter_by(order_id=int(order.id), status="open").first() is not None:
        raise Conflict("Există deja o dispută deschisă", code="DISPUTE_EXISTS")

    dispute = Dispute(order_id=int(order.id), opened_by=int(user.id), reason=reason)
    db.session.add(dispute)
    db.session.flush()
    transition_order(
        order,
        OrderStatus.DISPUTE_OPENED,
        idempotency_key=f"dispute:{dispute.id}:opened",
        actor={"type": party, "id": user.id},
        reason=reason,
    )
    notify_admins("dispute", "Dispută nouă", f"Comanda #{order.id}: {reason}", {"order_id": int(order.id), "dispute_id": int(dispute.id)})
    other = order.seller_id if party == "buyer" else order.buyer_id
    notify(int(other), "dispute", "Dispută deschisă", f"S-a deschis o dispută pentru comanda #{order.id}.", {"order_id": int(order.id), "dispute_id": int(dispute.id)})
    log_event("dispute_opened", actor_user_id=user.id, subject_type="order", subject_id=order.id, severity="WARNING")
    db.session.commit()
    return dispute


def resolve_dispute(admin: User, dispute_id: int, resolution: str, note: str = "") -> Dispute:
    """Settle a dispute: ``buyer`` refunds the order in full, ``seller`` releases the payout."""
    dispute = db.session.get(Dispute, int(dispute_id))
    if dispute is None:
        raise NotFound("Disputa nu a fost găsită", code="DISPUTE_NOT_FOUND")
    if dispute.status != "open":
        raise ServiceError("Disputa a fost deja rezolvată", code="DISPUTE_RESOLVED")
    resolution = (resolution or "").strip().lower()
    if resolution not in ("buyer", "seller"):
        raise ServiceError("resolution must be buyer or seller", code="INVALID_RESOLUTION")

    order = lock_order(dispute.order_id)
    if resolution == "buyer":
        refund = Refund(order_id=int(order.id), requested_by=int(dispute.opened_by), amount=0.0, reason=f"Dispută #{dispute.id}")
        db.session.add(refund)
        db.session.flush()
        _apply_refund(order, refund, money_minor_to_major(_remaining_minor(order)), actor=admin)
    elif order.status == OrderStatus.DISPUTE_OPENED:
        if Payout.query.filter_by(order_id=int(order.id)).first() is None:
            deliver_with_payout(
                order,
                idempotency_key=f"dispute:{dispute.id}:resolved",
                actor={"type": "admin", "id": admin.id},
                reason="dispute_resolved_seller",
            )
        else:
            transition_order(order, OrderStatus.DELIVERED, idempotency_key=f"dispute:{dispute.id}:resolved", actor={"type": "admin", "id": admin.id}, reason="dispute_resolved_seller")

    dispute.status = f"resolved_{resolution}"
    dispute.resolution_note = (note or "").strip() or None
    dispute.resolved_by = int(admin.id)
    dispute.resolved_at = datetime.utcnow()
    for uid in {int(order.buyer_id), int(order.seller_id)}:
        notify(uid, "dispute", "Dispută rezolvată", f"Disputa pentru comanda #{order.id} a fost rezolvată în favoarea {'cumpărătorului' if resolution == 'buyer' else 'vânzătorului'}.", {"order_id": int(order.id), "dispute_id": int(dispute.id)})
    log_event("dispute_resolved", actor_user_id=admin.id, subject_type="order", subject_id=order.id, metadata={"resolution": resolution})
    db.session.commit()
    return dispute
