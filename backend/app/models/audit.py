import json
from datetime import datetime

from app.extensions import db


class PlatformEvent(db.Model):
    """Append-only record of security and business events."""

    __tablename__ = "platform_events"

    id = db.Column(db.Integer, primary_key=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    event_type = db.Column(db.String(80), nullable=False, index=True)
    actor_user_id = db.Column(db.Integer, nullable=True, index=True)
    subject_type = db.Column(db.String(40), nullable=True)
    subject_id = db.Column(db.String(64), nullable=True)

    request_id = db.Column(db.String(80), nullable=True)
    idempotency_key = db.Column(db.String(180), nullable=True, unique=True)
    severity = db.Column(db.String(16), nullable=False, default="INFO", index=True)
    metadata_json = db.Column(db.Text, nullable=True)

    def metadata_dict(self) -> dict:
        try:
            parsed = json.loads(self.metadata_json or "{}")
        except Exception:
            return {"raw": str(self.metadata_json)}
        return parsed if isinstance(parsed, dict) else {"raw": parsed}

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "event_type": self.event_type,
            "actor_user_id": self.actor_user_id,
            "subject_type": self.subject_type or "",
            "subject_id": self.subject_id or "",
            "severity": self.severity or "INFO",
            "metadata": self.metadata_dict(),
        }


class FinancialAuditLog(db.Model):
    __tablename__ = "financial_audit_log"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    action = db.Column(db.String(64), nullable=False, index=True)
    order_id = db.Column(db.Integer, nullable=True)
    amount = db.Column(db.Float, nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)
    details_json = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    def to_dict(self) -> dict:
        try:
            details = json.loads(self.details_json or "{}")
        except Exception:
            details = {}
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action": self.action,
            "order_id": self.order_id,
            "amount": float(self.amount) if self.amount is not None else None,
            "details": details,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
