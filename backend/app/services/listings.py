from __future__ import annotations

from datetime import datetime

from sqlalchemy import case, func, or_

from app.extensions import db
from app.models import Bid, Listing, PriceHistory, Promotion, User
from app.services.bids import highest_bid
from app.services.errors import Forbidden, NotFound, ServiceError
from app.services.fraud import check_prohibited_content, listing_check_fail_open
from app.services.indexing import enqueue_url, listing_url
from app.services.seller_limits import kyc_enforcement, listing_limit, seller_level
from app.utils.events import log_event

LISTING_TYPES = ("fixed", "auction")
CONDITIONS = ("new", "like_new", "good", "fair", "poor")
SORTS = ("newest", "price_asc", "price_desc", "popular")
_TEXT_FIELDS = ("title", "description", "category", "condition", "location")


def _parse_dt(value):
    text = str(value or "").strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1]
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed.replace(tzinfo=None)


def _parse_amount(raw, field: str, *, required: bool = False) -> float | None:
    if raw in (None, ""):
        if required:
            raise ServiceError(f"{field} is required", code="MISSING_FIELDS")
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError) as e:
        raise ServiceError(f"{field} must be a number", code="INVALID_AMOUNT") from e
    if value <= 0:
        raise ServiceError(f"{field} must be greater than 0", code="INVALID_AMOUNT")
    return round(value, 2)


def _load_owned(user: User, listing_id: int) -> Listing:
    listing = db.session.get(Listing, int(listing_id))
    if listing is None:
        raise NotFound("Anunțul nu a fost găsit", code="LISTING_NOT_FOUND")
    if int(listing.seller_id) != int(user.id) and (user.role or "") != "admin":
        raise Forbidden("Nu ai acces la acest anunț", code="FORBIDDEN")
    return listing


def _reject_prohibited(title: str, description: str) -> dict:
    content = check_prohibited_content(title, description)
    if content["blocked"]:
        raise ServiceError(
            "Anunțul conține conținut interzis",
            status=422,
            code="PROHIBITED_CONTENT",
            extra={"matches": content["matches"]},
        )
    return content


def create_listing(seller: User, payload: dict) -> tuple[Listing, dict]:
    """Publish a listing after the seller gates; returns ``(listing, fraud_check)``."""
    title = (payload.get("title") or "").strip()
    if not title:
        raise ServiceError("title is required", code="MISSING_FIELDS")
    listing_type = (payload.get("listing_type") or "fixed").strip().lower()
    if listing_type not in LISTING_TYPES:
        raise ServiceError("listing_type must be fixed or auction", code="INVALID_LISTING_TYPE")
    condition = (payload.get("condition") or "").strip().lower()
    if condition and condition not in CONDITIONS:
        raise ServiceError("invalid condition", code="INVALID_CONDITION")

    if listing_type == "auction":
        starting_bid = _parse_amount(payload.get("starting_bid"), "starting_bid", required=True)
        price = _parse_amount(payload.get("price"), "price") or starting_bid
        auction_end = _parse_dt(payload.get("auction_end_date"))
        if auction_end is None or auction_end <= datetime.utcnow():
            raise ServiceError("auction_end_date must be in the future", code="INVALID_AUCTION_END")
    else:
        starting_bid = None
        auction_end = None
        price = _parse_amount(payload.get("price"), "price", required=True)

    kyc = kyc_enforcement(seller)
    if not kyc["canSell"]:
        raise Forbidden(kyc["message"] or "Nu poți vinde momentan", code="KYC_REQUIRED", extra={"kyc": kyc})
    limit = listing_limit(seller)
    if not limit["can_create_more"]:
        raise Forbidden(
            f"Ai atins limita de {limit['max_listings']} anunțuri active",
            code="LISTING_LIMIT_REACHED",
            extra={"limit": limit},
        )
    level = seller_level(seller)
    if level["listings_today"] >= int(level["daily_listing_limit"]):
        raise ServiceError(
            "Ai atins limita zilnică de anunțuri",
            status=429,
            code="DAILY_LISTING_LIMIT",
            extra={"level": level["level"], "daily_listing_limit": level["daily_listing_limit"]},
        )
    if price > float(level["max_sale_amount"]):
        raise ServiceError(
            f"Prețul maxim pentru nivelul tău este {level['max_sale_amount']}",
            code="PRICE_ABOVE_LEVEL_LIMIT",
            extra={"level": level["level"], "max_sale_amount": level["max_sale_amount"]},
        )
    description = (payload.get("description") or "").strip()
    _reject_prohibited(title, description)

    listing = Listing(
        seller_id=int(seller.id),
        title=title[:200],
        description=description,
        category=(payload.get("category") or "").strip()[:80] or None,
        condition=condition or None,
        location=(payload.get("location") or "").strip()[:120] or None,
        price=price,
        listing_type=listing_type,
        starting_bid=starting_bid,
        auction_end_date=auction_end,
    )
    listing.images = payload.get("images") or []
    db.session.add(listing)
    db.session.flush()
    db.session.add(PriceHistory(listing_id=int(listing.id), price=price))
    enqueue_url(listing_url(listing.id))
    log_event("listing_created", actor_user_id=seller.id, subject_type="listing", subject_id=listing.id, metadata={"price": price})
    db.session.commit()

    fraud = listing_check_fail_open(int(listing.id))
    db.session.refresh(listing)
    return listing, fraud


def update_listing(user: User, listing_id: int, payload: dict) -> Listing:
    listing = _load_owned(user, listing_id)
    if listing.is_sold:
        raise ServiceError("Anunțul a fost deja vândut", code="LISTING_SOLD")

    for field in _TEXT_FIELDS:
        if field in payload:
            value = (payload.get(field) or "").strip()
            if field == "title" and not value:
                raise ServiceError("title is required", code="MISSING_FIELDS")
            if field == "condition" and value and value.lower() not in CONDITIONS:
                raise ServiceError("invalid condition", code="INVALID_CONDITION")
            setattr(listing, field, value or None)
    if "title" in payload or "description" in payload:
        _reject_prohibited(listing.title, listing.description or "")
    if "images" in payload:
        listing.images = payload.get("images") or []

    price_changed = False
    if "price" in payload:
        price = _parse_amount(payload.get("price"), "price", required=True)
        level = seller_level(user) if int(user.id) == int(listing.seller_id) else None
        if level is not None and price > float(level["max_sale_amount"]):
            raise ServiceError(
                f"Prețul maxim pentru nivelul tău este {level['max_sale_amount']}",
                code="PRICE_ABOVE_LEVEL_LIMIT",
            )
        if abs(price - float(listing.price or 0)) >= 0.005:
            listing.price = price
            db.session.add(PriceHistory(listing_id=int(listing.id), price=price))
            price_changed = True

    listing.updated_at = datetime.utcnow()
    enqueue_url(listing_url(listing.id))
    db.session.commit()
    if price_changed:
        listing_check_fail_open(int(listing.id))
        db.session.refresh(listing)
    return listing


def active_promotion(listing_id: int, *, now: datetime | None = None) -> Promotion | None:
    now = now or datetime.utcnow()
    return (
        Promotion.query.filter(
            Promotion.listing_id == int(listing_id),
            Promotion.is_active.is_(True),
            Promotion.starts_at <= now,
            Promotion.ends_at > now,
        )
        .order_by(Promotion.ends_at.desc())
        .first()
    )


def listing_payload(listing: Listing) -> dict:
    item = listing.to_dict()
    top = highest_bid(int(listing.id))
    promo = active_promotion(int(listing.id))
    item["highest_bid"] = float(top.amount) if top else None
    item["bid_count"] = Bid.query.filter_by(listing_id=int(listing.id)).count()
    item["is_promoted"] = promo is not None
    item["promotion"] = promo.to_dict() if promo else None
    return item


def get_listing(listing_id: int, *, count_view: bool = True) -> dict:
    listing = db.session.get(Listing, int(listing_id))
    if listing is None:
        raise NotFound("Anunțul nu a fost găsit", code="LISTING_NOT_FOUND")
    if count_view:
        listing.views_count = int(listing.views_count or 0) + 1
        db.session.commit()
    return listing_payload(listing)


def browse_listings(
    *,
    q: str = "",
    category: str = "",
    min_price: float | None = None,
    max_price: float | None = None,
    sort: str = "newest",
    limit: int = 20,
    offset: int = 0,
) -> dict:
    """Active, unsold listings with running promotions ranked first."""
    now = datetime.utcnow()
    query = Listing.query.filter(Listing.is_active.is_(True), Listing.is_sold.is_(False))
    if q:
        like = f"%{q.strip().lower()}%"
        query = query.filter(or_(func.lower(Listing.title).like(like), func.lower(Listing.description).like(like)))
    if category:
        query = query.filter(Listing.category == category)
    if min_price is not None:
        query = query.filter(Listing.price >= float(min_price))
    if max_price is not None:
        query = query.filter(Listing.price <= float(max_price))

    promoted_ids = (
        db.session.query(Promotion.listing_id)
        .filter(Promotion.is_active.is_(True), Promotion.starts_at <= now, Promotion.ends_at > now)
        .distinct()
    )
    promoted_first = case((Listing.id.in_(promoted_ids), 0), else_=1)

    sort = sort if sort in SORTS else "newest"
    if sort == "price_asc":
        ordering = Listing.price.asc()
    elif sort == "price_desc":
        ordering = Listing.price.desc()
    elif sort == "popular":
        ordering = Listing.views_count.desc()
    else:
        ordering = Listing.created_at.desc()

    total = query.count()
    rows = query.order_by(promoted_first, ordering, Listing.id.desc()).offset(max(0, offset)).limit(max(1, min(limit, 100))).all()
    return {"items": [listing_payload(r) for r in rows], "total": total, "limit": limit, "offset": offset, "sort": sort}


def deactivate_listing(user: User, listing_id: int) -> Listing:
    listing = _load_owned(user, listing_id)
    listing.is_active = False
    listing.updated_at = datetime.utcnow()
    enqueue_url(listing_url(listing.id), "URL_DELETED")
    log_event("listing_deactivated", actor_user_id=user.id, subject_type="listing", subject_id=listing.id)
    db.session.commit()
    return listing


def seller_listings(seller_id: int) -> list[Listing]:
    return Listing.query.filter_by(seller_id=int(seller_id)).order_by(Listing.created_at.desc()).all()
