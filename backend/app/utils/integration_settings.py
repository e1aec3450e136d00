from __future__ import annotations

from app.extensions import db
from app.models import IntegrationSettings

INTEGRATION_MODES = ("disabled", "sandbox", "live")
PAYMENT_PROVIDERS = ("mock", "stripe")
_TOGGLES = ("paypal_enabled", "sms_enabled", "email_enabled", "indexing_enabled")


def get_settings() -> IntegrationSettings:
    row = IntegrationSettings.query.order_by(IntegrationSettings.id.asc()).first()
    if row is None:
        row = IntegrationSettings()
        db.session.add(row)
        db.session.commit()
    return row


def update_settings(payload: dict, *, actor_id: int | None = None) -> IntegrationSettings:
    row = get_settings()
    if "integrations_mode" in payload:
        mode = str(payload.get("integrations_mode") or "").strip().lower()
        if mode not in INTEGRATION_MODES:
            raise ValueError(f"invalid integrations_mode {mode!r}")
        row.integrations_mode = mode
    if "payments_provider" in payload:
        provider = str(payload.get("payments_provider") or "").strip().lower()
        if provider not in PAYMENT_PROVIDERS:
            raise ValueError(f"invalid payments_provider {provider!r}")
        row.payments_provider = provider
    for name in _TOGGLES:
        if name in payload:
            setattr(row, name, bool(payload.get(name)))
    row.updated_by = actor_id
    db.session.add(row)
    db.session.commit()
    return row
