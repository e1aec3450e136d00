from __future__ import annotations

from flask import Blueprint, jsonify

from app.segments.common import auth_error, json_body, service_error
from app.services import promotions
from app.services.errors import ServiceError
from app.utils.auth import current_user

promotions_bp = Blueprint("promotions_bp", __name__, url_prefix="/api/promotions")


@promotions_bp.get("")
def active():
    rows = promotions.active_promotions()
    return jsonify({"ok": True, "items": [p.to_dict() for p in rows]}), 200


@promotions_bp.post("/social")
def social():
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    payload = json_body()
    try:
        promo = promotions.create_social_promotion(
            u,
            payload.get("listing_id") or payload.get("listingId"),
            payload.get("platform") or "",
        )
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "promotion": promo.to_dict()}), 201


@promotions_bp.post("/paid")
def paid():
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    payload = json_body()
    try:
        body = promotions.create_paid_promotion(u, payload.get("listing_id") or payload.get("listingId"))
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, **body}), 201 if body.get("promotion") else 200
