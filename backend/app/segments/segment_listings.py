from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.extensions import db
from app.models import Listing, PriceHistory
from app.segments.common import auth_error, float_arg, int_arg, json_body, service_error
from app.services import bids as bid_service
from app.services import listings as listing_service
from app.services.checkout import order_totals_preview
from app.services.errors import ServiceError
from app.utils.auth import current_user

listings_bp = Blueprint("listings_bp", __name__, url_prefix="/api")


@listings_bp.get("/listings")
def browse():
    try:
        body = listing_service.browse_listings(
            q=(request.args.get("q") or "").strip(),
            category=(request.args.get("category") or "").strip(),
            min_price=float_arg("min_price"),
            max_price=float_arg("max_price"),
            sort=(request.args.get("sort") or "newest").strip().lower(),
            limit=int_arg("limit", 20, minimum=1),
            offset=int_arg("offset", 0, maximum=100000),
        )
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, **body}), 200


@listings_bp.post("/listings")
def create():
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    try:
        listing, fraud = listing_service.create_listing(u, json_body())
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "listing": listing.to_dict(), "fraud_check": fraud}), 201


@listings_bp.get("/listings/mine")
def mine():
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    rows = listing_service.seller_listings(int(u.id))
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200


@listings_bp.get("/listings/<int:listing_id>")
def detail(listing_id: int):
    try:
        item = listing_service.get_listing(listing_id)
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "listing": item}), 200


@listings_bp.patch("/listings/<int:listing_id>")
def update(listing_id: int):
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    try:
        listing = listing_service.update_listing(u, listing_id, json_body())
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "listing": listing.to_dict()}), 200


@listings_bp.delete("/listings/<int:listing_id>")
def deactivate(listing_id: int):
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    try:
        listing = listing_service.deactivate_listing(u, listing_id)
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "listing": listing.to_dict()}), 200


@listings_bp.get("/listings/<int:listing_id>/price-history")
def price_history(listing_id: int):
    if db.session.get(Listing, listing_id) is None:
        return jsonify({"ok": False, "message": "Anunțul nu a fost găsit"}), 404
    rows = PriceHistory.query.filter_by(listing_id=listing_id).order_by(PriceHistory.created_at.asc(), PriceHistory.id.asc()).all()
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200


@listings_bp.get("/listings/<int:listing_id>/fees")
def fee_preview(listing_id: int):
    try:
        body = order_totals_preview(listing_id, (request.args.get("shipping_method") or "standard").strip().lower())
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "fees": body}), 200


@listings_bp.get("/listings/<int:listing_id>/bids")
def list_bids(listing_id: int):
    rows = bid_service.list_bids(listing_id)
    top = rows[0] if rows else None
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows], "highest_bid": float(top.amount) if top else None}), 200


@listings_bp.post("/listings/<int:listing_id>/bids")
def place_bid(listing_id: int):
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    try:
        bid = bid_service.place_bid(u, listing_id, json_body().get("amount"))
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "bid": bid.to_dict()}), 201


@listings_bp.delete("/bids/<int:bid_id>")
def decline_bid(bid_id: int):
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    try:
        payload = request.get_json(silent=True) or {}
        bid_service.decline_bid(u, bid_id, reason=payload.get("reason"))
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True}), 200
