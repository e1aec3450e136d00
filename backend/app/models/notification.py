import json
from datetime import datetime

from app.extensions import db


class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # order | new_order | order_shipped | payout | message | bid | refund | promotion | tracking_reminder | ...
    type = db.Column(db.String(40), nullable=False, default="general")
    channel = db.Column(db.String(16), nullable=False, default="in_app")  # in_app | sms | email
    title = db.Column(db.String(160), nullable=True)
    message = db.Column(db.Text, nullable=False, default="")
    data_json = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="sent")  # queued | sent | failed
    provider = db.Column(db.String(32), nullable=True)
    provider_ref = db.Column(db.String(120), nullable=True)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    def data(self) -> dict:
        raw = (self.data_json or "").strip()
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except Exception:
            return {}
        return parsed if isinstance(parsed, dict) else {}

    def mark_read(self, read_at: datetime | None = None) -> datetime:
        stamped = read_at or datetime.utcnow()
        self.is_read = True
        self.read_at = stamped
        return stamped

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type or "general",
            "channel": self.channel or "in_app",
            "title": self.title or "",
            "message": self.message or "",
            "data": self.data(),
            "status": self.status or "sent",
            "is_read": bool(self.is_read),
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class PushSubscription(db.Model):
    __tablename__ = "push_subscriptions"
    __table_args__ = (
        db.UniqueConstraint("user_id", "endpoint", name="uq_push_subscription_user_endpoint"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    endpoint = db.Column(db.String(1024), nullable=False)
    p256dh = db.Column(db.String(255), nullable=False)
    auth = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "endpoint": self.endpoint,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
