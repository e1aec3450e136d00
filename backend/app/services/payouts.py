"""Delivery confirmation, seller payouts and withdrawals."""
from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from app.extensions import db
from app.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError, ProviderError
from app.integrations.payments.factory import build_payments_provider
from app.models import Order, Payout, User
from app.services.errors import Forbidden, NotFound, ServiceError
from app.services.fees import compute_order_fees
from app.services.fraud import withdrawal_check_fail_closed
from app.services.notifications import email_user, html_paragraphs, notify
from app.services.order_lifecycle import OrderStatus, find_transition, lock_order, transition_order
from app.services.seller_limits import kyc_enforcement
from app.utils.events import log_financial_action
from app.utils.integration_settings import get_settings
from app.utils.money import money_major_to_minor, money_minor_to_major

PAYOUT_STATUSES = ("pending", "processing", "completed", "failed", "cancelled")


def _delivered_key(order_id: int) -> str:
    return f"order:{int(order_id)}:delivered"


def _notify_payout(payout: Payout) -> None:
    if payout.status == "completed":
        title = "Plată Primită!"
        message = f"Ai primit {payout.net_amount:.2f} {payout.currency.upper()} pentru comanda #{payout.order_id}."
    else:
        title = "Livrare Confirmată"
        message = f"Cumpărătorul a confirmat livrarea comenzii #{payout.order_id}. Plata de {payout.net_amount:.2f} {payout.currency.upper()} este în procesare."
    notify(int(payout.seller_id), "payout", title, message, {"order_id": payout.order_id, "payout_id": int(payout.id)})


def attempt_transfer(payout: Payout) -> bool:
    """Transfer a sale payout to the seller's connected account.

    Failures leave the payout pending and are logged. Commits.
    """
    if payout.kind != "sale" or payout.status not in ("pending", "processing") or payout.transfer_id:
        return False
    seller = db.session.get(User, int(payout.seller_id))
    destination = (getattr(seller, "stripe_account_id", None) or "").strip()
    if not destination:
        return False
    try:
        provider = build_payments_provider(get_settings())
    except (IntegrationDisabledError, IntegrationMisconfiguredError) as e:
        current_app.logger.info("payout_transfer_skipped payout_id=%s reason=%s", payout.id, e)
        return False

    payout.attempts = int(payout.attempts or 0) + 1
    order = db.session.get(Order, int(payout.order_id)) if payout.order_id else None
    try:
        result = provider.create_transfer(
            amount_minor=money_major_to_minor(payout.net_amount),
            currency=payout.currency,
            destination=destination,
            transfer_group=f"ORDER_{payout.order_id}",
            metadata={"order_id": str(payout.order_id), "payout_id": str(payout.id)},
        )
    except ProviderError as e:
        payout.failure_reason = f"{e.code}:{e.message}"[:240]
        db.session.commit()
        current_app.logger.warning("payout_transfer_failed payout_id=%s code=%s", payout.id, e.code)
        return False

    payout.transfer_id = result.transfer_id
    payout.status = "completed"
    payout.failure_reason = None
    payout.processed_at = datetime.utcnow()
    if order is not None:
        order.payout_status = "completed"
    log_financial_action(
        "payout_transferred",
        user_id=payout.seller_id,
        order_id=payout.order_id,
        amount=payout.net_amount,
        details={"transfer_id": result.transfer_id, "payout_id": payout.id},
    )
    db.session.commit()
    current_app.logger.info("payout_transfer_ok payout_id=%s transfer_id=%s", payout.id, result.transfer_id)
    return True


def deliver_with_payout(order: Order, *, idempotency_key: str, actor=None, reason: str = "") -> Payout:
    """Mark ``order`` delivered and stage its sale payout; the caller commits.

    net = gross - seller commission, where gross is the item amount.
    """
    fees = compute_order_fees(float(order.amount or 0))
    gross = money_minor_to_major(fees.item_minor)
    commission = money_minor_to_major(fees.seller_commission_minor)
    net = money_minor_to_major(fees.net_payout_minor)

    transition_order(
        order,
        OrderStatus.DELIVERED,
        idempotency_key=idempotency_key,
        actor=actor,
        reason=reason,
        metadata={"gross": gross, "commission": commission, "net": net},
    )
    order.delivery_confirmed_at = order.delivery_confirmed_at or datetime.utcnow()
    order.seller_commission = commission
    order.payout_amount = net
    order.payout_status = "pending"
    payout = Payout(
        seller_id=int(order.seller_id),
        order_id=int(order.id),
        kind="sale",
        gross_amount=gross,
        platform_fee=commission,
        net_amount=net,
        currency=order.currency or "ron",
        status="pending",
    )
    db.session.add(payout)
    log_financial_action("payout_created", user_id=order.seller_id, order_id=order.id, amount=net, details={"gross": gross, "commission": commission})
    return payout


def confirm_delivery(buyer: User, order_id: int) -> dict:
    order = lock_order(order_id)
    if int(order.buyer_id) != int(buyer.id):
        raise Forbidden("Doar cumpărătorul poate confirma livrarea", code="FORBIDDEN")

    if order.status == OrderStatus.DELIVERED and find_transition(int(order.id), _delivered_key(order.id)) is not None:
        payout = Payout.query.filter_by(order_id=int(order.id)).first()
        body = {"success": True, "replayed": True, "order": order.to_dict(), "payout": payout.to_dict() if payout else None}
        db.session.rollback()
        return body
    if order.status != OrderStatus.SHIPPED:
        raise ServiceError(f"Comanda trebuie să fie expediată (status curent: {order.status})", code="INVALID_ORDER_STATUS")

    payout = deliver_with_payout(
        order,
        idempotency_key=_delivered_key(order.id),
        actor={"type": "buyer", "id": buyer.id},
        reason="delivery_confirmed",
    )
    net = payout.net_amount
    commission = payout.platform_fee
    try:
        db.session.commit()
    except IntegrityError:
        # Concurrent confirmation already inserted the payout for this order.
        db.session.rollback()
        order = db.session.get(Order, int(order_id))
        payout = Payout.query.filter_by(order_id=int(order_id)).first()
        return {"success": True, "replayed": True, "order": order.to_dict(), "payout": payout.to_dict() if payout else None}

    attempt_transfer(payout)
    _notify_payout(payout)
    db.session.commit()
    seller = db.session.get(User, int(order.seller_id))
    email_user(
        seller,
        "Livrare confirmată",
        html_paragraphs(
            f"Cumpărătorul a confirmat livrarea comenzii #{order.id}.",
            f"Suma netă: {net:.2f} {payout.currency.upper()} (comision {commission:.2f}).",
        ),
    )
    return {"success": True, "replayed": False, "order": order.to_dict(), "payout": payout.to_dict()}


def process_pending_payouts(limit: int = 50) -> dict:
    rows = (
        Payout.query.join(User, User.id == Payout.seller_id)
        .filter(
            Payout.kind == "sale",
            Payout.status == "pending",
            Payout.transfer_id.is_(None),
            User.stripe_account_id.isnot(None),
            User.stripe_account_id != "",
        )
        .order_by(Payout.created_at.asc())
        .limit(max(1, int(limit)))
        .all()
    )
    completed = 0
    for payout in rows:
        if attempt_transfer(payout):
            _notify_payout(payout)
            db.session.commit()
            completed += 1
    return {"processed": len(rows), "completed": completed, "failed": len(rows) - completed}


def check_payout_status(payout: Payout) -> Payout:
    if not payout.transfer_id:
        return payout
    provider = build_payments_provider(get_settings())
    result = provider.retrieve_transfer(payout.transfer_id)
    order = db.session.get(Order, int(payout.order_id)) if payout.order_id else None
    if result.reversed:
        payout.status = "failed"
        payout.failure_reason = "transfer_reversed"
        if order is not None:
            order.payout_status = "failed"
        log_financial_action("payout_reversed", user_id=payout.seller_id, order_id=payout.order_id, amount=payout.net_amount)
    else:
        payout.status = "completed"
        if order is not None:
            order.payout_status = "completed"
    db.session.commit()
    return payout


def check_payout_statuses(limit: int = 100) -> dict:
    rows = (
        Payout.query.filter(Payout.transfer_id.isnot(None), Payout.status.in_(("processing", "completed")))
        .order_by(Payout.processed_at.desc())
        .limit(max(1, int(limit)))
        .all()
    )
    failed = 0
    for payout in rows:
        try:
            if check_payout_status(payout).status == "failed":
                failed += 1
        except (ProviderError, IntegrationDisabledError, IntegrationMisconfiguredError) as e:
            db.session.rollback()
            current_app.logger.warning("payout_status_check_failed payout_id=%s err=%s", payout.id, e)
    return {"checked": len(rows), "failed": failed}


def _get_payout(payout_id: int) -> Payout:
    payout = db.session.get(Payout, int(payout_id))
    if payout is None:
        raise NotFound("Plata nu a fost găsită", code="PAYOUT_NOT_FOUND")
    return payout


def retry_payout(payout_id: int, *, actor_id: int | None = None) -> Payout:
    payout = _get_payout(payout_id)
    if payout.status != "failed":
        raise ServiceError("Doar plățile eșuate pot fi reîncercate", code="INVALID_PAYOUT_STATUS")
    payout.status = "pending"
    payout.failure_reason = None
    payout.transfer_id = None
    log_financial_action("payout_retry", user_id=actor_id, order_id=payout.order_id, amount=payout.net_amount, details={"payout_id": payout.id})
    db.session.commit()
    attempt_transfer(payout)
    return payout


def available_balance(user_id: int) -> float:
    earned = (
        db.session.query(func.sum(Payout.net_amount))
        .filter(Payout.seller_id == int(user_id), Payout.kind == "sale", Payout.status == "completed")
        .scalar()
    )
    withdrawn = (
        db.session.query(func.sum(Payout.net_amount))
        .filter(
            Payout.seller_id == int(user_id),
            Payout.kind == "withdrawal",
            Payout.status.notin_(("failed", "cancelled")),
        )
        .scalar()
    )
    return money_minor_to_major(money_major_to_minor(earned or 0) - money_major_to_minor(withdrawn or 0))


def request_withdrawal(user: User, amount, *, ip_address: str | None = None) -> Payout:
    try:
        amount = round(float(amount), 2)
    except (TypeError, ValueError) as e:
        raise ServiceError("Suma este invalidă", code="INVALID_AMOUNT") from e
    if amount <= 0:
        raise ServiceError("Suma trebuie să fie mai mare decât 0", code="INVALID_AMOUNT")

    balance = available_balance(int(user.id))
    fraud = withdrawal_check_fail_closed(int(user.id), amount, balance=balance)
    if not fraud.get("allowed"):
        raise Forbidden(
            fraud.get("message") or "Retragerea a fost blocată din motive de securitate",
            code="WITHDRAWAL_BLOCKED",
            extra={"alerts": fraud.get("alerts", [])},
        )
    db.session.refresh(user)
    kyc = kyc_enforcement(user)
    if not kyc["canWithdraw"]:
        raise Forbidden(kyc["message"] or "Nu poți retrage fonduri momentan", code="KYC_REQUIRED", extra={"kyc": kyc})
    if amount > balance:
        raise ServiceError("Fonduri insuficiente", code="INSUFFICIENT_BALANCE", extra={"available": balance})

    payout = Payout(
        seller_id=int(user.id),
        kind="withdrawal",
        gross_amount=amount,
        platform_fee=0.0,
        net_amount=amount,
        currency=str(current_app.config.get("MARKETPLACE_CURRENCY") or "ron").lower(),
        status="pending",
    )
    db.session.add(payout)
    log_financial_action("withdrawal_requested", user_id=user.id, amount=amount, ip_address=ip_address, details={"balance": balance})
    db.session.commit()
    return payout


def complete_withdrawal(payout_id: int, *, actor_id: int, reference: str = "") -> Payout:
    payout = _get_payout(payout_id)
    if payout.kind != "withdrawal" or payout.status not in ("pending", "processing"):
        raise ServiceError("Retragerea nu poate fi finalizată", code="INVALID_PAYOUT_STATUS")
    payout.status = "completed"
    payout.transfer_id = (reference or "").strip()[:120] or None
    payout.processed_at = datetime.utcnow()
    notify(int(payout.seller_id), "payout", "Retragere finalizată", f"Retragerea de {payout.net_amount:.2f} {payout.currency.upper()} a fost procesată.", {"payout_id": int(payout.id)})
    log_financial_action("withdrawal_completed", user_id=actor_id, amount=payout.net_amount, details={"payout_id": payout.id, "reference": reference})
    db.session.commit()
    return payout


def seller_payouts(user_id: int) -> list[Payout]:
    return Payout.query.filter_by(seller_id=int(user_id)).order_by(Payout.created_at.desc()).all()
