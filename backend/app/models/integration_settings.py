from datetime import datetime

import sqlalchemy as sa

from app.extensions import db


class IntegrationSettings(db.Model):
    """Singleton row of integration toggles. Secrets stay env-only."""

    __tablename__ = "integration_settings"

    id = db.Column(db.Integer, primary_key=True)

    # disabled | sandbox | live
    integrations_mode = db.Column(db.String(24), nullable=False, default="disabled", server_default="disabled")
    # mock | stripe
    payments_provider = db.Column(db.String(24), nullable=False, default="mock", server_default="mock")
    paypal_enabled = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"))
    sms_enabled = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"))
    email_enabled = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"))
    indexing_enabled = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"))

    updated_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            "integrations_mode": self.integrations_mode or "disabled",
            "payments_provider": self.payments_provider or "mock",
            "paypal_enabled": bool(self.paypal_enabled),
            "sms_enabled": bool(self.sms_enabled),
            "email_enabled": bool(self.email_enabled),
            "indexing_enabled": bool(self.indexing_enabled),
            "updated_by": self.updated_by,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
