from __future__ import annotations

from flask import Blueprint, jsonify

from app.segments.common import auth_error, json_body, service_error
from app.services.errors import ServiceError
from app.services.payouts import available_balance, request_withdrawal, seller_payouts
from app.utils.auth import current_user
from app.utils.observability import client_ip

payouts_bp = Blueprint("payouts_bp", __name__, url_prefix="/api/payouts")


@payouts_bp.get("")
def list_payouts():
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    rows = seller_payouts(int(u.id))
    return jsonify({"ok": True, "items": [p.to_dict() for p in rows]}), 200


@payouts_bp.get("/balance")
def balance():
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    return jsonify({"ok": True, "balance": available_balance(int(u.id))}), 200


@payouts_bp.post("/withdraw")
def withdraw():
    u = current_user()
    denied = auth_error(u)
    if denied:
        return denied
    try:
        payout = request_withdrawal(u, json_body().get("amount"), ip_address=client_ip())
    except ServiceError as e:
        return service_error(e)
    return jsonify({"ok": True, "payout": payout.to_dict(), "balance": available_balance(int(u.id))}), 201
