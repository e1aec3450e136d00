from __future__ import annotations

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db
from app.models import FinancialAuditLog, PlatformEvent
from app.utils.observability import get_request_id

SECURITY_SEVERITIES = ("INFO", "WARNING", "CRITICAL")


def _safe_value(value: Any):
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _safe_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_safe_value(v) for v in value]
    return str(value)


def _safe_json(data: Any) -> str:
    normalized = _safe_value(data if isinstance(data, dict) else {"value": data})
    return json.dumps(normalized, separators=(",", ":"), ensure_ascii=False)


def log_event(
    event_type: str,
    *,
    actor_user_id: int | None = None,
    subject_type: str | None = None,
    subject_id: int | str | None = None,
    severity: str = "INFO",
    idempotency_key: str | None = None,
    metadata: dict | None = None,
) -> PlatformEvent | None:
    """Best-effort event logger.

    Runs inside a savepoint so a failed insert never poisons the caller's
    transaction; the caller still owns the final commit.
    """
    key = (idempotency_key or "").strip()[:180] or None
    try:
        if key:
            existing = PlatformEvent.query.filter_by(idempotency_key=key).first()
            if existing:
                return existing
        event = PlatformEvent(
            event_type=(event_type or "unknown").strip()[:80],
            actor_user_id=int(actor_user_id) if actor_user_id is not None else None,
            subject_type=(subject_type or "").strip()[:40] or None,
            subject_id=str(subject_id)[:64] if subject_id is not None else None,
            request_id=(get_request_id() or "")[:80] or None,
            idempotency_key=key,
            severity=(severity or "INFO").strip().upper()[:16] or "INFO",
            metadata_json=_safe_json(metadata or {}),
        )
        with db.session.begin_nested():
            db.session.add(event)
        return event
    except SQLAlchemyError:
        current_app.logger.warning("platform_event_write_failed type=%s", event_type, exc_info=True)
        return None


def log_security_event(event_type: str, *, user_id: int | None = None, details: dict | None = None) -> PlatformEvent | None:
    details = dict(details or {})
    severity = str(details.pop("severity", "INFO") or "INFO").upper()
    if severity not in SECURITY_SEVERITIES:
        severity = "INFO"
    return log_event(
        f"security.{(event_type or 'unknown').strip()}",
        actor_user_id=user_id,
        subject_type="user" if user_id is not None else None,
        subject_id=user_id,
        severity=severity,
        metadata=details,
    )


def log_financial_action(
    action: str,
    *,
    user_id: int | None,
    order_id: int | None = None,
    amount: float | None = None,
    ip_address: str | None = None,
    details: dict | None = None,
) -> FinancialAuditLog:
    row = FinancialAuditLog(
        user_id=user_id,
        action=(action or "").strip()[:64],
        order_id=order_id,
        amount=amount,
        ip_address=(ip_address or "")[:64] or None,
        details_json=_safe_json(details or {}),
    )
    db.session.add(row)
    return row
