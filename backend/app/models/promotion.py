from datetime import datetime

from app.extensions import db


class Promotion(db.Model):
    __tablename__ = "listing_promotions"

    id = db.Column(db.Integer, primary_key=True)
    listing_id = db.Column(db.Integer, db.ForeignKey("listings.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # social_share | paid
    promotion_type = db.Column(db.String(24), nullable=False)
    platform = db.Column(db.String(32), nullable=True)
    amount_paid = db.Column(db.Float, nullable=False, default=0.0)
    payment_intent_id = db.Column(db.String(255), nullable=True)

    starts_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    ends_at = db.Column(db.DateTime, nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def is_running(self, now: datetime | None = None) -> bool:
        now = now or datetime.utcnow()
        return bool(self.is_active) and self.starts_at <= now < self.ends_at

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "listing_id": self.listing_id,
            "user_id": self.user_id,
            "promotion_type": self.promotion_type,
            "platform": self.platform or "",
            "amount_paid": float(self.amount_paid or 0.0),
            "starts_at": self.starts_at.isoformat() if self.starts_at else None,
            "ends_at": self.ends_at.isoformat() if self.ends_at else None,
            "is_active": bool(self.is_active),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
