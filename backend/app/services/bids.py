from __future__ import annotations

from datetime import datetime

from app.extensions import db
from app.models import Bid, Listing, User
from app.services.errors import Forbidden, NotFound, ServiceError
from app.services.notifications import notify


def highest_bid(listing_id: int) -> Bid | None:
    return (
        Bid.query.filter_by(listing_id=int(listing_id))
        .order_by(Bid.amount.desc(), Bid.created_at.asc())
        .first()
    )


def list_bids(listing_id: int) -> list[Bid]:
    return Bid.query.filter_by(listing_id=int(listing_id)).order_by(Bid.amount.desc(), Bid.created_at.asc()).all()


def place_bid(bidder: User, listing_id: int, amount, *, now: datetime | None = None) -> Bid:
    now = now or datetime.utcnow()
    try:
        amount = round(float(amount), 2)
    except (TypeError, ValueError) as e:
        raise ServiceError("Suma licitată este invalidă", code="INVALID_AMOUNT") from e
    if amount <= 0:
        raise ServiceError("Suma licitată trebuie să fie pozitivă", code="INVALID_AMOUNT")

    listing = db.session.get(Listing, int(listing_id))
    if listing is None:
        raise NotFound("Anunțul nu a fost găsit", code="LISTING_NOT_FOUND")
    if not listing.is_auction:
        raise ServiceError("Acest anunț nu este o licitație", code="NOT_AN_AUCTION")
    if not listing.is_active or listing.is_sold:
        raise ServiceError("Licitația nu mai este activă", code="AUCTION_INACTIVE")
    if int(listing.seller_id) == int(bidder.id):
        raise ServiceError("Nu poți licita la propriul anunț", code="OWN_LISTING")
    if listing.auction_end_date is not None and listing.auction_end_date <= now:
        raise ServiceError("Licitația s-a încheiat", code="AUCTION_ENDED")

    top = highest_bid(int(listing.id))
    if top is not None:
        if amount <= float(top.amount):
            raise ServiceError(
                f"Oferta trebuie să fie mai mare decât {float(top.amount):.2f}",
                code="BID_TOO_LOW",
                extra={"highest_bid": float(top.amount)},
            )
    else:
        minimum = float(listing.starting_bid or listing.price or 0)
        if amount < minimum:
            raise ServiceError(
                f"Oferta minimă este {minimum:.2f}",
                code="BID_TOO_LOW",
                extra={"starting_bid": minimum},
            )

    bid = Bid(listing_id=int(listing.id), bidder_id=int(bidder.id), amount=amount)
    db.session.add(bid)
    db.session.flush()
    notify(
        int(listing.seller_id),
        "bid",
        "Ofertă nouă",
        f"Ai primit o ofertă de {amount:.2f} pentru „{listing.title}”.",
        {"listing_id": int(listing.id), "bid_id": int(bid.id)},
    )
    if top is not None and int(top.bidder_id) != int(bidder.id):
        notify(
            int(top.bidder_id),
            "outbid",
            "Ai fost depășit",
            f"Cineva a oferit mai mult pentru „{listing.title}”.",
            {"listing_id": int(listing.id)},
        )
    db.session.commit()
    return bid


def decline_bid(seller: User, bid_id: int, reason: str | None = None) -> None:
    bid = db.session.get(Bid, int(bid_id))
    if bid is None:
        raise NotFound("Oferta nu a fost găsită", code="BID_NOT_FOUND")
    listing = db.session.get(Listing, int(bid.listing_id))
    if listing is None or int(listing.seller_id) != int(seller.id):
        raise Forbidden("Doar vânzătorul poate refuza oferta", code="FORBIDDEN")
    reason = (reason or "").strip()[:500]
    message = f"Oferta ta de {float(bid.amount):.2f} pentru „{listing.title}” a fost refuzată."
    if reason:
        message = f"{message} Motiv: {reason}"
    notify(
        int(bid.bidder_id),
        "bid_declined",
        "Ofertă refuzată",
        message,
        {"listing_id": int(listing.id), "reason": reason or None},
    )
    db.session.delete(bid)
    db.session.commit()
