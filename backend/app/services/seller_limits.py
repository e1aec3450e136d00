from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func

from app.extensions import db
from app.models import Listing, Order, Review, SellerLimit, User

DEFAULT_MAX_LISTINGS = 10

# Ordered from lowest to highest; a seller holds the highest level whose
# requirements they meet.
NEW_SELLER_LEVELS = (
    {
        "level": "new",
        "label": "New",
        "max_listings": 10,
        "max_sale_amount": 500,
        "daily_listing_limit": 3,
        "can_withdraw_immediately": False,
        "requires": {},
    },
    {
        "level": "intermediate",
        "label": "Intermediate",
        "max_listings": 50,
        "max_sale_amount": 2000,
        "daily_listing_limit": 10,
        "can_withdraw_immediately": False,
        "requires": {"min_days": 7, "min_sales": 3, "min_rating": 3.5, "kyc": False},
    },
    {
        "level": "established",
        "label": "Established",
        "max_listings": 200,
        "max_sale_amount": 10000,
        "daily_listing_limit": 25,
        "can_withdraw_immediately": True,
        "requires": {"min_days": 30, "min_sales": 10, "min_rating": 4.0, "kyc": True},
    },
    {
        "level": "trusted",
        "label": "Trusted",
        "max_listings": 1000,
        "max_sale_amount": 100000,
        "daily_listing_limit": 100,
        "can_withdraw_immediately": True,
        "requires": {"min_days": 90, "min_sales": 50, "min_rating": 4.5, "kyc": True},
    },
)

SELLER_TIERS = {
    "new": {"max_listings": 10, "max_monthly_sales": 5000},
    "standard": {"max_listings": 50, "max_monthly_sales": 25000},
    "trusted": {"max_listings": 200, "max_monthly_sales": 100000},
    "unlimited": {"max_listings": None, "max_monthly_sales": None},
}


def seller_sales_count(user_id: int) -> int:
    return Order.query.filter_by(seller_id=int(user_id), status="delivered").count()


def seller_average_rating(user_id: int) -> float:
    avg = db.session.query(func.avg(Review.rating)).filter(Review.seller_id == int(user_id)).scalar()
    return float(avg or 0.0)


def _meets(requires: dict, *, days: int, sales: int, rating: float, kyc_approved: bool) -> bool:
    if not requires:
        return True
    if requires.get("kyc") and not kyc_approved:
        return False
    return (
        days >= int(requires.get("min_days", 0))
        and sales >= int(requires.get("min_sales", 0))
        and rating >= float(requires.get("min_rating", 0))
    )


def next_level_requirements(current: dict, *, days: int, sales: int, rating: float, kyc_approved: bool) -> list[str]:
    """What the seller still lacks for the level above ``current``, counted from their own numbers."""
    index = next(i for i, level in enumerate(NEW_SELLER_LEVELS) if level["level"] == current["level"])
    if index + 1 >= len(NEW_SELLER_LEVELS):
        return []
    target = NEW_SELLER_LEVELS[index + 1]
    requires = target["requires"]
    label = target["label"]
    missing = []
    if requires.get("kyc") and not kyc_approved:
        missing.append("Finalizează verificarea KYC")
    min_days = int(requires.get("min_days", 0))
    if days < min_days:
        missing.append(f"{min_days - days} zile pentru {label}")
    min_sales = int(requires.get("min_sales", 0))
    if sales < min_sales:
        missing.append(f"{min_sales - sales} vânzări pentru {label}")
    min_rating = float(requires.get("min_rating", 0))
    # A seller without sales has no rating to improve yet.
    if rating < min_rating and (index > 0 or sales > 0):
        missing.append(f"Rating {min_rating:g}+ pentru {label}")
    return missing


def seller_level(user: User, *, now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()
    days = max(0, (now - (user.created_at or now)).days)
    sales = seller_sales_count(int(user.id))
    rating = seller_average_rating(int(user.id))
    kyc_approved = (user.kyc_status or "") == "approved"

    current = NEW_SELLER_LEVELS[0]
    for level in NEW_SELLER_LEVELS:
        if _meets(level["requires"], days=days, sales=sales, rating=rating, kyc_approved=kyc_approved):
            current = level
        else:
            break
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    listings_today = Listing.query.filter(Listing.seller_id == int(user.id), Listing.created_at >= today_start).count()
    return {
        "level": current["level"],
        "max_listings": current["max_listings"],
        "max_sale_amount": current["max_sale_amount"],
        "daily_listing_limit": current["daily_listing_limit"],
        "can_withdraw_immediately": current["can_withdraw_immediately"],
        "next_level_requirements": next_level_requirements(
            current, days=days, sales=sales, rating=rating, kyc_approved=kyc_approved
        ),
        "listings_today": listings_today,
        "account_age_days": days,
        "total_sales": sales,
        "average_rating": round(rating, 1),
    }


def get_seller_limit(user_id: int) -> SellerLimit | None:
    return SellerLimit.query.filter_by(user_id=int(user_id)).first()


def seller_limit_payload(user_id: int) -> dict:
    row = get_seller_limit(user_id)
    if row is None:
        return {"user_id": int(user_id), "tier": "new", "max_listings": 10, "max_monthly_sales": 5000.0}
    return row.to_dict()


def update_seller_limit(user_id: int, tier: str, *, actor_id: int | None = None) -> SellerLimit:
    tier = (tier or "").strip().lower()
    if tier not in SELLER_TIERS:
        raise ValueError(f"unknown seller tier {tier!r}")
    row = get_seller_limit(user_id)
    if row is None:
        row = SellerLimit(user_id=int(user_id))
    limits = SELLER_TIERS[tier]
    row.tier = tier
    row.max_listings = limits["max_listings"]
    row.max_monthly_sales = limits["max_monthly_sales"]
    row.updated_by = actor_id
    db.session.add(row)
    db.session.commit()
    return row


def listing_limit(user: User) -> dict:
    row = get_seller_limit(int(user.id))
    if row is None:
        max_listings = DEFAULT_MAX_LISTINGS
    else:
        max_listings = row.max_listings
    active = Listing.query.filter_by(seller_id=int(user.id), is_active=True, is_sold=False).count()
    can_create_more = max_listings is None or active < int(max_listings)
    return {
        "max_listings": max_listings,
        "active_listings": active,
        "remaining": None if max_listings is None else max(0, int(max_listings) - active),
        "can_create_more": can_create_more,
    }


def monthly_sales_total(user_id: int, *, now: datetime | None = None) -> float:
    now = now or datetime.utcnow()
    since = now - timedelta(days=30)
    total = (
        db.session.query(func.sum(Order.amount))
        .filter(
            Order.seller_id == int(user_id),
            Order.created_at >= since,
            Order.status.in_(("paid", "shipped", "delivered")),
        )
        .scalar()
    )
    return float(total or 0.0)


def kyc_enforcement(user: User) -> dict:
    missing: list[str] = []
    has_address = bool(user.address_line1 and user.city and user.postal_code)
    if not has_address:
        missing.append("adresa")
    has_bank = bool(user.iban) or bool(user.account_number and user.sort_code)
    if not has_bank:
        missing.append("cont bancar")
    kyc_status = user.kyc_status or "not_started"
    is_verified = kyc_status == "approved" and user.kyc_verified_at is not None
    if not user.kyc_documents_submitted:
        missing.append("documente KYC")

    can_sell = bool(user.kyc_documents_submitted) and not bool(user.is_suspended)
    can_withdraw = is_verified and has_bank and not bool(user.withdrawal_blocked) and not bool(user.is_suspended)

    if user.is_suspended:
        message = "Contul tău este suspendat. Contactează suportul."
    elif user.withdrawal_blocked:
        message = "Extragerea fondurilor este temporar blocată."
    elif not user.kyc_documents_submitted:
        message = "Completează verificarea KYC pentru a putea vinde."
    elif kyc_status == "pending":
        message = "Verificarea KYC este în curs de procesare."
    elif kyc_status == "rejected":
        message = "Verificarea KYC a fost respinsă. Te rugăm să retrimiti documentele."
    elif not has_bank:
        message = "Adaugă un cont bancar pentru a primi plăți."
    elif is_verified:
        message = "Contul tău este verificat complet."
    else:
        message = ""

    return {
        "isVerified": is_verified,
        "kycStatus": kyc_status,
        "hasBankDetails": has_bank,
        "hasAddress": has_address,
        "canSell": can_sell,
        "canWithdraw": can_withdraw,
        "missingFields": missing,
        "message": message,
    }
