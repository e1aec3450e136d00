from datetime import datetime

from app.extensions import db


class SellerLimit(db.Model):
    __tablename__ = "seller_limits"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True)
    # new | standard | trusted | unlimited
    tier = db.Column(db.String(24), nullable=False, default="new")
    max_listings = db.Column(db.Integer, nullable=True, default=10)
    max_monthly_sales = db.Column(db.Float, nullable=True, default=5000.0)
    updated_by = db.Column(db.Integer, nullable=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "tier": self.tier or "new",
            "max_listings": int(self.max_listings) if self.max_listings is not None else None,
            "max_monthly_sales": float(self.max_monthly_sales) if self.max_monthly_sales is not None else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
