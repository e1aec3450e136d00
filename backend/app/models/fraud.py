import json
from datetime import datetime

from app.extensions import db


class ProhibitedItem(db.Model):
    __tablename__ = "prohibited_items"

    id = db.Column(db.Integer, primary_key=True)
    keyword = db.Column(db.String(120), nullable=False, index=True)
    category = db.Column(db.String(80), nullable=True)
    # warn | block | flag
    severity = db.Column(db.String(16), nullable=False, default="block")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "keyword": self.keyword,
            "category": self.category or "",
            "severity": self.severity or "block",
            "is_active": bool(self.is_active),
        }


class FraudAlert(db.Model):
    __tablename__ = "fraud_alerts"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    listing_id = db.Column(db.Integer, db.ForeignKey("listings.id"), nullable=True, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)
    alert_type = db.Column(db.String(48), nullable=False, index=True)
    # info | warning | critical
    severity = db.Column(db.String(16), nullable=False, default="warning")
    description = db.Column(db.Text, nullable=True)
    details_json = db.Column(db.Text, nullable=True)
    # pending | resolved | dismissed
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    auto_action_taken = db.Column(db.String(48), nullable=True)
    resolved_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    resolved_at = db.Column(db.DateTime, nullable=True)

    def details(self) -> dict:
        try:
            parsed = json.loads(self.details_json or "{}")
        except Exception:
            return {}
        return parsed if isinstance(parsed, dict) else {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "listing_id": self.listing_id,
            "order_id": self.order_id,
            "alert_type": self.alert_type,
            "severity": self.severity,
            "description": self.description or "",
            "details": self.details(),
            "status": self.status,
            "auto_action_taken": self.auto_action_taken or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }
