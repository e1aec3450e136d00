import json
from datetime import datetime

from app.extensions import db


class Listing(db.Model):
    __tablename__ = "listings"

    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(80), nullable=True, index=True)
    condition = db.Column(db.String(32), nullable=True)
    location = db.Column(db.String(120), nullable=True)
    images_json = db.Column(db.Text, nullable=True)

    price = db.Column(db.Float, nullable=False, default=0.0)

    # fixed | auction
    listing_type = db.Column(db.String(16), nullable=False, default="fixed")
    starting_bid = db.Column(db.Float, nullable=True)
    auction_end_date = db.Column(db.DateTime, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    is_sold = db.Column(db.Boolean, nullable=False, default=False, index=True)
    views_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def images(self) -> list:
        raw = (self.images_json or "").strip()
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
        except Exception:
            return []
        return [str(x) for x in parsed] if isinstance(parsed, list) else []

    @images.setter
    def images(self, value) -> None:
        items = [str(x).strip() for x in (value or []) if str(x).strip()]
        self.images_json = json.dumps(items)

    @property
    def is_auction(self) -> bool:
        return (self.listing_type or "").strip().lower() == "auction"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "seller_id": self.seller_id,
            "title": self.title,
            "description": self.description or "",
            "category": self.category or "",
            "condition": self.condition or "",
            "location": self.location or "",
            "images": self.images,
            "price": float(self.price or 0.0),
            "listing_type": self.listing_type or "fixed",
            "starting_bid": float(self.starting_bid) if self.starting_bid is not None else None,
            "auction_end_date": self.auction_end_date.isoformat() if self.auction_end_date else None,
            "is_active": bool(self.is_active),
            "is_sold": bool(self.is_sold),
            "views_count": int(self.views_count or 0),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class PriceHistory(db.Model):
    __tablename__ = "price_history"

    id = db.Column(db.Integer, primary_key=True)
    listing_id = db.Column(db.Integer, db.ForeignKey("listings.id"), nullable=False, index=True)
    price = db.Column(db.Float, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "listing_id": self.listing_id,
            "price": float(self.price or 0.0),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
