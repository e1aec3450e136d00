from __future__ import annotations

from flask import Blueprint, jsonify

from app.segments.common import admin_or_service_error, json_body, service_error
from app.services import indexing
from app.services.errors import ServiceError

indexing_bp = Blueprint("indexing_bp", __name__, url_prefix="/api/indexing")


@indexing_bp.post("/submit")
def submit():
    denied = admin_or_service_error()
    if denied:
        return denied
    payload = json_body()
    url = payload.get("url") or ""
    if not url and payload.get("listing_id"):
        url = indexing.listing_url(payload["listing_id"])
    try:
        result = indexing.submit_url(url, (payload.get("action") or "URL_UPDATED").strip().upper())
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, **result}), 200


@indexing_bp.post("/ping")
def ping():
    denied = admin_or_service_error()
    if denied:
        return denied
    try:
        results = indexing.ping_search_engines()
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "sitemap": indexing.sitemap_url(), "results": results}), 200


@indexing_bp.post("/process")
def process():
    denied = admin_or_service_error()
    if denied:
        return denied
    try:
        limit = int(json_body().get("limit") or 50)
    except (TypeError, ValueError):
        limit = 50
    summary = indexing.process_indexing_queue(max(1, min(limit, 500)))
    return jsonify({"ok": True, **summary}), 200
