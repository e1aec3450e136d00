"""Fraud heuristics, prohibited-content matching and their fail-open/closed policies."""
from __future__ import annotations

import json
from datetime import datetime, timedelta

from flask import current_app

from app.extensions import db
from app.models import Bid, FraudAlert, Listing, Order, Payout, PriceHistory, ProhibitedItem, User
from app.services.errors import NotFound, ServiceError
from app.utils.events import log_security_event

SCORE_BY_SEVERITY = {"critical": 25, "warning": 10}

MULTIPLE_ACCOUNTS_THRESHOLD = 2
SPAM_LISTINGS_PER_HOUR = 10
PRICE_CHANGE_THRESHOLD = 0.8
WITHDRAWALS_PER_DAY = 5
NEW_ACCOUNT_DAYS = 7
NEW_ACCOUNT_BALANCE_LIMIT = 500.0
STUCK_ORDER_DAYS = 7
STUCK_ORDER_SCAN_LIMIT = 10

SECURITY_CHECK_FAILED = "Verificarea de securitate a eșuat"


def check_prohibited_content(title: str, description: str = "") -> dict:
    text = f"{title or ''} {description or ''}".lower()
    matches = []
    for item in ProhibitedItem.query.filter_by(is_active=True).order_by(ProhibitedItem.id.asc()).all():
        keyword = (item.keyword or "").strip().lower()
        if keyword and keyword in text:
            matches.append({"keyword": item.keyword, "severity": item.severity or "block", "category": item.category or ""})
    return {
        "matches": matches,
        "blocked": any(m["severity"] == "block" for m in matches),
        "flagged": bool(matches),
    }


def _raise_alert(
    alert_type: str,
    severity: str,
    description: str,
    *,
    user_id: int | None = None,
    listing_id: int | None = None,
    order_id: int | None = None,
    details: dict | None = None,
    auto_action: str | None = None,
) -> FraudAlert:
    alert = FraudAlert(
        user_id=user_id,
        listing_id=listing_id,
        order_id=order_id,
        alert_type=alert_type,
        severity=severity,
        description=description,
        details_json=json.dumps(details or {}, default=str),
        auto_action_taken=auto_action,
    )
    db.session.add(alert)
    if user_id is not None:
        user = db.session.get(User, int(user_id))
        if user is not None:
            user.fraud_score = int(user.fraud_score or 0) + SCORE_BY_SEVERITY.get(severity, 0)
    return alert


def _summary(alerts: list[FraudAlert], **extra) -> dict:
    body = {
        "alerts": [{"type": a.alert_type, "severity": a.severity, "description": a.description} for a in alerts],
        "alert_count": len(alerts),
        "has_critical": any(a.severity == "critical" for a in alerts),
    }
    body.update(extra)
    return body


def check_user(user_id: int, *, ip_address: str | None = None, now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()
    user = db.session.get(User, int(user_id))
    if user is None:
        raise NotFound("User not found", code="USER_NOT_FOUND")
    alerts: list[FraudAlert] = []

    ip = (ip_address or user.last_login_ip or "").strip()
    if ip:
        others = User.query.filter(User.last_login_ip == ip, User.id != int(user.id)).count()
        if others > MULTIPLE_ACCOUNTS_THRESHOLD:
            alerts.append(_raise_alert(
                "multiple_accounts",
                "critical",
                f"Același IP folosit de {others} alte conturi",
                user_id=user.id,
                details={"ip": ip, "other_accounts": others},
            ))

    recent = Listing.query.filter(Listing.seller_id == int(user.id), Listing.created_at >= now - timedelta(hours=1)).count()
    if recent > SPAM_LISTINGS_PER_HOUR:
        alerts.append(_raise_alert(
            "spam_listings",
            "warning",
            f"{recent} anunțuri create în ultima oră",
            user_id=user.id,
            details={"listings_last_hour": recent},
        ))

    self_bids = (
        db.session.query(Bid, Listing)
        .join(Listing, Listing.id == Bid.listing_id)
        .filter(Bid.bidder_id == int(user.id), Listing.seller_id == int(user.id))
        .all()
    )
    for listing_id in sorted({listing.id for _bid, listing in self_bids}):
        listing = db.session.get(Listing, listing_id)
        listing.is_active = False
        alerts.append(_raise_alert(
            "shill_bidding",
            "critical",
            "Licitare pe propriul anunț",
            user_id=user.id,
            listing_id=listing_id,
            auto_action="listing_deactivated",
        ))

    if alerts:
        log_security_event("fraud_user_flagged", user_id=user.id, details={"severity": "WARNING", "alerts": [a.alert_type for a in alerts]})
    db.session.commit()
    return _summary(alerts, user_id=int(user.id), fraud_score=int(user.fraud_score or 0))


def check_listing(listing_id: int) -> dict:
    listing = db.session.get(Listing, int(listing_id))
    if listing is None:
        raise NotFound("Listing not found", code="LISTING_NOT_FOUND")
    alerts: list[FraudAlert] = []

    text = f"{listing.title or ''} {listing.description or ''}".lower()
    for item in ProhibitedItem.query.filter_by(is_active=True).order_by(ProhibitedItem.id.asc()).all():
        keyword = (item.keyword or "").strip().lower()
        if keyword and keyword in text:
            blocking = (item.severity or "block") == "block"
            listing.is_active = False
            alerts.append(_raise_alert(
                "prohibited_item",
                "critical" if blocking else "warning",
                f"Cuvânt interzis detectat: {item.keyword}",
                user_id=listing.seller_id,
                listing_id=listing.id,
                details={"keyword": item.keyword, "severity": item.severity},
                auto_action="listing_deactivated",
            ))
            break

    prices = (
        PriceHistory.query.filter_by(listing_id=int(listing.id))
        .order_by(PriceHistory.created_at.desc(), PriceHistory.id.desc())
        .limit(2)
        .all()
    )
    if len(prices) == 2 and float(prices[1].price or 0) > 0:
        newest, previous = float(prices[0].price), float(prices[1].price)
        change = abs(newest - previous) / previous
        if change > PRICE_CHANGE_THRESHOLD:
            alerts.append(_raise_alert(
                "price_manipulation",
                "warning",
                f"Modificare de preț de {round(change * 100)}%",
                user_id=listing.seller_id,
                listing_id=listing.id,
                details={"previous": previous, "current": newest},
            ))

    db.session.commit()
    return _summary(alerts, listing_id=int(listing.id), is_active=bool(listing.is_active))


def check_withdrawal(user_id: int, amount: float, *, balance: float, now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()
    user = db.session.get(User, int(user_id))
    if user is None:
        raise NotFound("User not found", code="USER_NOT_FOUND")
    alerts: list[FraudAlert] = []

    if (user.kyc_status or "") != "approved":
        alerts.append(_raise_alert("kyc_incomplete", "warning", "Verificare KYC incompletă", user_id=user.id))

    recent_payouts = Payout.query.filter(Payout.seller_id == int(user.id), Payout.created_at >= now - timedelta(hours=24)).count()
    if recent_payouts > WITHDRAWALS_PER_DAY:
        user.withdrawal_blocked = True
        alerts.append(_raise_alert(
            "suspicious_withdrawal",
            "critical",
            f"{recent_payouts} plăți în ultimele 24 de ore",
            user_id=user.id,
            details={"payouts_24h": recent_payouts, "amount": amount},
            auto_action="withdrawal_blocked",
        ))

    age_days = (now - (user.created_at or now)).days
    if age_days < NEW_ACCOUNT_DAYS and float(balance or 0) > NEW_ACCOUNT_BALANCE_LIMIT:
        alerts.append(_raise_alert(
            "new_account_high_balance",
            "warning",
            "Cont nou cu sold ridicat",
            user_id=user.id,
            details={"account_age_days": age_days, "balance": balance},
        ))

    blocked = bool(user.withdrawal_blocked) or any(a.severity == "critical" for a in alerts)
    db.session.commit()
    return _summary(alerts, user_id=int(user.id), blocked=blocked, allowed=not blocked)


def scan_platform(*, now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()
    stuck = (
        Order.query.filter(Order.status == "pending", Order.created_at < now - timedelta(days=STUCK_ORDER_DAYS))
        .order_by(Order.created_at.asc())
        .limit(STUCK_ORDER_SCAN_LIMIT)
        .all()
    )
    alerts = []
    for order in stuck:
        already = FraudAlert.query.filter_by(alert_type="stuck_order", order_id=int(order.id), status="pending").first()
        if already is not None:
            continue
        alerts.append(_raise_alert(
            "stuck_order",
            "warning",
            f"Comanda #{order.id} este în așteptare de peste {STUCK_ORDER_DAYS} zile",
            user_id=order.seller_id,
            order_id=order.id,
            details={"created_at": order.created_at},
        ))
    db.session.commit()
    return _summary(alerts, scanned=len(stuck))


def resolve_alert(alert_id: int, *, actor_id: int, status: str = "resolved") -> FraudAlert:
    if status not in ("resolved", "dismissed"):
        raise ServiceError("status must be resolved or dismissed", code="INVALID_STATUS")
    alert = db.session.get(FraudAlert, int(alert_id))
    if alert is None:
        raise NotFound("Alert not found", code="ALERT_NOT_FOUND")
    alert.status = status
    alert.resolved_by = actor_id
    alert.resolved_at = datetime.utcnow()
    db.session.commit()
    return alert


def listing_check_fail_open(listing_id: int) -> dict:
    """Listing checks never block publishing when the checker itself breaks."""
    try:
        return check_listing(listing_id)
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("fraud_listing_check_failed listing_id=%s", listing_id)
        return {"alerts": [], "alert_count": 0, "has_critical": False, "check_failed": True, "error": str(e)[:200]}


def withdrawal_check_fail_closed(user_id: int, amount: float, *, balance: float) -> dict:
    """Withdrawal checks block the payout when the checker itself breaks."""
    try:
        return check_withdrawal(user_id, amount, balance=balance)
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("fraud_withdrawal_check_failed user_id=%s", user_id)
        return {
            "alerts": [],
            "alert_count": 0,
            "has_critical": False,
            "blocked": True,
            "allowed": False,
            "check_failed": True,
            "message": SECURITY_CHECK_FAILED,
            "error": str(e)[:200],
        }
