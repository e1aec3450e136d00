from datetime import datetime

from app.extensions import db


class Payout(db.Model):
    __tablename__ = "payouts"

    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    # One sale payout per order; withdrawals carry no order.
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, unique=True)

    # sale | withdrawal
    kind = db.Column(db.String(16), nullable=False, default="sale")

    gross_amount = db.Column(db.Float, nullable=False, default=0.0)
    platform_fee = db.Column(db.Float, nullable=False, default=0.0)
    net_amount = db.Column(db.Float, nullable=False, default=0.0)
    currency = db.Column(db.String(8), nullable=False, default="ron")

    # pending | processing | completed | failed | cancelled
    status = db.Column(db.String(24), nullable=False, default="pending", index=True)
    transfer_id = db.Column(db.String(120), nullable=True)
    failure_reason = db.Column(db.String(240), nullable=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    processed_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "seller_id": self.seller_id,
            "order_id": self.order_id,
            "kind": self.kind or "sale",
            "gross_amount": float(self.gross_amount or 0.0),
            "platform_fee": float(self.platform_fee or 0.0),
            "net_amount": float(self.net_amount or 0.0),
            "currency": self.currency or "ron",
            "status": self.status or "pending",
            "transfer_id": self.transfer_id or "",
            "failure_reason": self.failure_reason or "",
            "attempts": int(self.attempts or 0),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
        }


class PlatformFee(db.Model):
    __tablename__ = "platform_fees"

    id = db.Column(db.Integer, primary_key=True)
    # buyer_fee | buyer_service_fee | seller_commission | weekly_promotion
    fee_type = db.Column(db.String(40), nullable=False, index=True)
    amount = db.Column(db.Float, nullable=False, default=0.0)
    is_percentage = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    description = db.Column(db.String(240), nullable=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "fee_type": self.fee_type,
            "amount": float(self.amount or 0.0),
            "is_percentage": bool(self.is_percentage),
            "is_active": bool(self.is_active),
            "description": self.description or "",
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
