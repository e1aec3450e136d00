"""Reviews, seller reputation and the user role/status lookups used by the client."""
from __future__ import annotations

from flask import Blueprint, jsonify

from app.extensions import db
from app.models import User
from app.segments.common import auth_error, int_arg, json_body, service_error
from app.services import reviews as review_service
from app.services.errors import ServiceError
from app.services.seller_limits import kyc_enforcement, listing_limit, monthly_sales_total, seller_level, seller_limit_payload
from app.utils.auth import current_user, has_role

reviews_bp = Blueprint("reviews_bp", __name__, url_prefix="/api")


@reviews_bp.post("/orders/<int:order_id>/review")
def create_review(order_id: int):
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    payload = json_body()
    try:
        review = review_service.create_review(u, order_id, payload.get("rating"), payload.get("comment") or "")
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "review": review.to_dict()}), 201


@reviews_bp.get("/users/<int:user_id>/reviews")
def user_reviews(user_id: int):
    rows = review_service.seller_reviews(user_id)
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows], "stats": review_service.seller_stats(user_id)}), 200


@reviews_bp.get("/users/<int:user_id>/stats")
def user_stats(user_id: int):
    return jsonify({"ok": True, **review_service.seller_stats(user_id)}), 200


@reviews_bp.get("/users/top-sellers")
def top_sellers():
    return jsonify({"ok": True, "items": review_service.get_top_sellers(int_arg("limit", 10, minimum=1, maximum=100))}), 200


@reviews_bp.get("/users/<int:user_id>/is-top-seller")
def top_seller_flag(user_id: int):
    return jsonify({"ok": True, "user_id": user_id, "is_top_seller": review_service.is_top_seller(user_id)}), 200


@reviews_bp.get("/users/<int:user_id>/special-status")
def special_status(user_id: int):
    try:
        status = review_service.get_user_special_status(user_id)
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, **status}), 200


@reviews_bp.get("/users/<int:user_id>/roles/<role>")
def user_has_role(user_id: int, role: str):
    return jsonify({"ok": True, "user_id": user_id, "role": role, "has_role": has_role(db.session.get(User, user_id), role)}), 200


@reviews_bp.get("/seller/limits")
def my_limits():
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    return jsonify(
        {
            "ok": True,
            "level": seller_level(u),
            "listing_limit": listing_limit(u),
            "kyc": kyc_enforcement(u),
            "custom_limit": seller_limit_payload(int(u.id)),
            "monthly_sales": monthly_sales_total(int(u.id)),
        }
    ), 200
