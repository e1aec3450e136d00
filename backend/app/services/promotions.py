"""Listing promotions: free social-share boosts and paid weekly boosts."""
from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app

from app.extensions import db
from app.integrations.common import ProviderError
from app.integrations.payments.base import LineItem
from app.models import Listing, Promotion, User
from app.services.checkout import construct_event, payments_provider, record_webhook_event
from app.services.errors import Forbidden, NotFound, ServiceError
from app.services.fees import DEFAULT_WEEKLY_PROMOTION_FEE, weekly_promotion_fee
from app.services.indexing import site_url
from app.services.notifications import notify
from app.utils.events import log_event, log_financial_action
from app.utils.money import money_major_to_minor

SOCIAL_PROMOTION_HOURS = 12
SOCIAL_COOLDOWN_HOURS = 24
PAID_PROMOTION_DAYS = 7
SOCIAL_PLATFORMS = ("facebook", "instagram", "twitter", "whatsapp", "tiktok", "pinterest", "telegram")
PROMOTION_WEBHOOK_PROVIDER = "stripe_promotions"


def _owned_listing(user: User, listing_id) -> Listing:
    if not listing_id:
        raise ServiceError("Missing listingId", code="MISSING_FIELDS")
    try:
        listing = db.session.get(Listing, int(listing_id))
    except (TypeError, ValueError) as e:
        raise ServiceError("listingId must be an integer", code="INVALID_LISTING_ID") from e
    if listing is None:
        raise NotFound("Listing not found", code="LISTING_NOT_FOUND")
    if int(listing.seller_id) != int(user.id):
        raise Forbidden("Not authorized to promote this listing", code="FORBIDDEN")
    return listing


def active_promotions(*, now: datetime | None = None) -> list[Promotion]:
    now = now or datetime.utcnow()
    return (
        Promotion.query.filter(Promotion.is_active.is_(True), Promotion.starts_at <= now, Promotion.ends_at > now)
        .order_by(Promotion.ends_at.desc())
        .all()
    )


def create_social_promotion(user: User, listing_id, platform: str, *, now: datetime | None = None) -> Promotion:
    now = now or datetime.utcnow()
    platform = (platform or "").strip().lower()
    if not platform:
        raise ServiceError("Missing listingId or platform", code="MISSING_FIELDS")
    if platform not in SOCIAL_PLATFORMS:
        raise ServiceError(f"Unsupported platform {platform}", code="INVALID_PLATFORM")
    listing = _owned_listing(user, listing_id)
    recent = Promotion.query.filter(
        Promotion.listing_id == int(listing.id),
        Promotion.promotion_type == "social_share",
        Promotion.platform == platform,
        Promotion.created_at >= now - timedelta(hours=SOCIAL_COOLDOWN_HOURS),
    ).first()
    if recent is not None:
        raise ServiceError(f"You already shared on {platform} in the last 24 hours", code="PROMOTION_COOLDOWN")

    promo = Promotion(
        listing_id=int(listing.id),
        user_id=int(user.id),
        promotion_type="social_share",
        platform=platform,
        amount_paid=0.0,
        starts_at=now,
        ends_at=now + timedelta(hours=SOCIAL_PROMOTION_HOURS),
        created_at=now,
    )
    db.session.add(promo)
    db.session.commit()
    return promo


def _activate_paid_promotion(listing: Listing, user_id: int, amount: float, *, payment_intent_id: str | None = None, now: datetime | None = None) -> Promotion:
    """Stage a 7-day paid promotion with its activity log and notification; the caller commits."""
    now = now or datetime.utcnow()
    promo = Promotion(
        listing_id=int(listing.id),
        user_id=int(user_id),
        promotion_type="paid",
        amount_paid=float(amount),
        payment_intent_id=(payment_intent_id or None),
        starts_at=now,
        ends_at=now + timedelta(days=PAID_PROMOTION_DAYS),
    )
    db.session.add(promo)
    db.session.flush()
    log_event(
        "promotion_purchased",
        actor_user_id=user_id,
        subject_type="listing",
        subject_id=listing.id,
        metadata={"promotion_id": promo.id, "amount_paid": amount, "duration_days": PAID_PROMOTION_DAYS},
    )
    log_financial_action("promotion_purchased", user_id=user_id, amount=amount, details={"listing_id": listing.id, "promotion_id": promo.id})
    notify(
        int(user_id),
        "promotion",
        "🚀 Produs promovat!",
        f"Produsul „{listing.title}” va apărea pe homepage timp de {PAID_PROMOTION_DAYS} zile.",
        {"listing_id": int(listing.id), "promotion_id": int(promo.id), "ends_at": promo.ends_at.isoformat()},
    )
    return promo


def _active_paid(listing_id: int, now: datetime) -> Promotion | None:
    return Promotion.query.filter(
        Promotion.listing_id == int(listing_id),
        Promotion.promotion_type == "paid",
        Promotion.is_active.is_(True),
        Promotion.ends_at > now,
    ).first()


def create_paid_promotion(user: User, listing_id) -> dict:
    now = datetime.utcnow()
    listing = _owned_listing(user, listing_id)
    if not listing.is_active:
        raise ServiceError("Cannot promote inactive listing", code="LISTING_INACTIVE")
    existing = _active_paid(int(listing.id), now)
    if existing is not None:
        raise ServiceError(
            f"This listing already has an active promotion until {existing.ends_at.strftime('%d.%m.%Y')}",
            code="PROMOTION_ACTIVE",
        )
    amount = weekly_promotion_fee()
    provider = payments_provider()

    if provider.name == "mock":
        promo = _activate_paid_promotion(listing, int(user.id), amount, now=now)
        db.session.commit()
        return {
            "success": True,
            "promotion": promo.to_dict(),
            "message": f"Produsul tău va fi promovat timp de {PAID_PROMOTION_DAYS} zile!",
            "amountPaid": amount,
            "endsAt": promo.ends_at.isoformat(),
        }

    try:
        session = provider.create_checkout_session(
            line_items=[LineItem(name=f"Promovare {PAID_PROMOTION_DAYS} zile: {listing.title}", amount_minor=money_major_to_minor(amount))],
            currency=str(current_app.config.get("MARKETPLACE_CURRENCY") or "ron").lower(),
            success_url=f"{site_url()}/listing/{listing.id}?promotion=success",
            cancel_url=f"{site_url()}/listing/{listing.id}",
            metadata={"promotion_type": "paid", "listing_id": str(listing.id), "user_id": str(user.id)},
            customer_email=user.email,
        )
    except ProviderError as e:
        current_app.logger.warning("promotion_checkout_failed listing_id=%s code=%s", listing.id, e.code)
        raise ServiceError("Nu am putut iniția plata", status=502, code=e.code) from e
    return {"success": True, "url": session.url, "sessionId": session.session_id, "amount": amount}


def promotion_webhook(payload: bytes, signature: str) -> dict:
    _provider, event = construct_event("promotions", payload, signature)
    row = record_webhook_event(PROMOTION_WEBHOOK_PROVIDER, event)
    if row is None:
        db.session.rollback()
        return {"received": True, "duplicate": True}

    obj = ((event.get("data") or {}).get("object")) or {}
    metadata = obj.get("metadata") or {}
    row.status = "ignored"
    if event.get("type") == "checkout.session.completed" and metadata.get("promotion_type") == "paid":
        listing = None
        try:
            listing = db.session.get(Listing, int(metadata.get("listing_id")))
            user_id = int(metadata.get("user_id"))
        except (TypeError, ValueError):
            listing = None
        if listing is None:
            row.error = "listing_not_found"
        else:
            amount_total = obj.get("amount_total")
            amount = float(amount_total) / 100.0 if amount_total else DEFAULT_WEEKLY_PROMOTION_FEE
            _activate_paid_promotion(listing, user_id, amount, payment_intent_id=obj.get("payment_intent"))
            row.status = "processed"
    row.processed_at = datetime.utcnow()
    db.session.commit()
    return {"received": True}


def expire_promotions(*, now: datetime | None = None) -> int:
    now = now or datetime.utcnow()
    expired = (
        Promotion.query.filter(Promotion.is_active.is_(True), Promotion.ends_at <= now)
        .update({Promotion.is_active: False}, synchronize_session=False)
    )
    db.session.commit()
    return int(expired or 0)
