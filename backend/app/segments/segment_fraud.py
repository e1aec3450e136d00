from __future__ import annotations

from flask import Blueprint, jsonify

from app.segments.common import admin_or_service_error, bad_request, json_body, service_error
from app.services import fraud
from app.services.errors import ServiceError
from app.services.payouts import available_balance

fraud_bp = Blueprint("fraud_bp", __name__, url_prefix="/api/fraud")

ACTIONS = ("check_user", "check_listing", "check_withdrawal", "scan_platform", "check_content")


@fraud_bp.post("/check")
def check():
    denied = admin_or_service_error()
    if denied:
        return denied
    payload = json_body()
    action = (payload.get("action") or "").strip()
    if action not in ACTIONS:
        return bad_request(f"Unknown action {action or '<empty>'}", "INVALID_ACTION")

    try:
        if action == "check_content":
            result = fraud.check_prohibited_content(payload.get("title") or "", payload.get("description") or "")
        elif action == "scan_platform":
            result = fraud.scan_platform()
        elif action == "check_listing":
            if not payload.get("listing_id"):
                return bad_request("listing_id is required", "MISSING_FIELDS")
            result = fraud.check_listing(int(payload["listing_id"]))
        else:
            if not payload.get("user_id"):
                return bad_request("user_id is required", "MISSING_FIELDS")
            user_id = int(payload["user_id"])
            if action == "check_user":
                result = fraud.check_user(user_id, ip_address=payload.get("ip_address"))
            else:
                result = fraud.check_withdrawal(
                    user_id,
                    float(payload.get("amount") or 0),
                    balance=available_balance(user_id),
                )
    except ServiceError as e:
        return service_error(e)
    except (TypeError, ValueError):
        return bad_request("Invalid identifier or amount", "INVALID_INPUT")
    return jsonify({"ok": True, "action": action, **result}), 200
