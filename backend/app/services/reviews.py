from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from app.extensions import db
from app.models import Order, Review, User
from app.services.errors import Conflict, Forbidden, NotFound, ServiceError
from app.services.notifications import notify
from app.services.order_lifecycle import OrderStatus
from app.services.seller_limits import seller_level

TOP_SELLER_MIN_SALES = 10
TOP_SELLER_MIN_RATING = 4.5


def create_review(buyer: User, order_id: int, rating, comment: str = "") -> Review:
    try:
        rating = int(rating)
    except (TypeError, ValueError) as e:
        raise ServiceError("Ratingul trebuie să fie între 1 și 5", code="INVALID_RATING") from e
    if rating < 1 or rating > 5:
        raise ServiceError("Ratingul trebuie să fie între 1 și 5", code="INVALID_RATING")
    order = db.session.get(Order, int(order_id))
    if order is None:
        raise NotFound("Comanda nu a fost găsită", code="ORDER_NOT_FOUND")
    if int(order.buyer_id) != int(buyer.id):
        raise Forbidden("Doar cumpărătorul poate lăsa o recenzie", code="FORBIDDEN")
    if order.status != OrderStatus.DELIVERED:
        raise ServiceError("Poți lăsa o recenzie doar după livrare", code="INVALID_ORDER_STATUS")
    if Review.query.filter_by(order_id=int(order.id)).first() is not None:
        raise Conflict("Ai lăsat deja o recenzie pentru această comandă", code="REVIEW_EXISTS")

    review = Review(
        order_id=int(order.id),
        reviewer_id=int(buyer.id),
        seller_id=int(order.seller_id),
        rating=rating,
        comment=(comment or "").strip() or None,
    )
    db.session.add(review)
    notify(int(order.seller_id), "review", "Recenzie nouă", f"Ai primit o recenzie de {rating} stele.", {"order_id": int(order.id)})
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise Conflict("Ai lăsat deja o recenzie pentru această comandă", code="REVIEW_EXISTS") from e
    return review


def seller_reviews(seller_id: int) -> list[Review]:
    return Review.query.filter_by(seller_id=int(seller_id)).order_by(Review.created_at.desc()).all()


def seller_stats(seller_id: int) -> dict:
    avg, count = (
        db.session.query(func.avg(Review.rating), func.count(Review.id))
        .filter(Review.seller_id == int(seller_id))
        .one()
    )
    sales = Order.query.filter_by(seller_id=int(seller_id), status=OrderStatus.DELIVERED).count()
    return {
        "seller_id": int(seller_id),
        "average_rating": round(float(avg or 0.0), 1),
        "total_reviews": int(count or 0),
        "total_sales": int(sales),
    }


def is_top_seller(user_id: int) -> bool:
    stats = seller_stats(user_id)
    return stats["total_sales"] >= TOP_SELLER_MIN_SALES and stats["average_rating"] >= TOP_SELLER_MIN_RATING


def get_top_sellers(limit: int = 10) -> list[dict]:
    sales = (
        db.session.query(Order.seller_id.label("seller_id"), func.count(Order.id).label("sales"))
        .filter(Order.status == OrderStatus.DELIVERED)
        .group_by(Order.seller_id)
        .subquery()
    )
    ratings = (
        db.session.query(Review.seller_id.label("seller_id"), func.avg(Review.rating).label("rating"))
        .group_by(Review.seller_id)
        .subquery()
    )
    rows = (
        db.session.query(User, sales.c.sales, ratings.c.rating)
        .join(sales, sales.c.seller_id == User.id)
        .outerjoin(ratings, ratings.c.seller_id == User.id)
        .order_by(sales.c.sales.desc(), func.coalesce(ratings.c.rating, 0).desc(), User.id.asc())
        .limit(max(1, min(int(limit), 100)))
        .all()
    )
    return [
        {
            "user_id": int(user.id),
            "display_name": user.display_name or "",
            "total_sales": int(total or 0),
            "average_rating": round(float(rating or 0.0), 1),
        }
        for user, total, rating in rows
    ]


def get_user_special_status(user_id: int) -> dict:
    user = db.session.get(User, int(user_id))
    if user is None:
        raise NotFound("Utilizatorul nu a fost găsit", code="USER_NOT_FOUND")
    return {
        "user_id": int(user.id),
        "is_top_seller": is_top_seller(int(user.id)),
        "is_verified": bool(user.is_verified) or (user.kyc_status or "") == "approved",
        "is_admin": user.is_admin,
        "seller_level": seller_level(user)["level"],
        "kyc_status": user.kyc_status or "not_started",
    }
