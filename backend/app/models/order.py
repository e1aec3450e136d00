from datetime import datetime

from app.extensions import db


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)

    buyer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    listing_id = db.Column(db.Integer, db.ForeignKey("listings.id"), nullable=False, index=True)

    # pending | paid | shipped | delivered | cancelled | dispute_opened
    # | refund_requested | refunded | partially_refunded
    status = db.Column(db.String(32), nullable=False, default="pending", index=True)

    amount = db.Column(db.Float, nullable=False, default=0.0)
    buyer_fee = db.Column(db.Float, nullable=False, default=0.0)
    shipping_cost = db.Column(db.Float, nullable=False, default=0.0)
    seller_commission = db.Column(db.Float, nullable=False, default=0.0)
    total_amount = db.Column(db.Float, nullable=False, default=0.0)
    currency = db.Column(db.String(8), nullable=False, default="ron")

    shipping_method = db.Column(db.String(24), nullable=False, default="standard")
    shipping_address = db.Column(db.Text, nullable=True)

    payment_provider = db.Column(db.String(24), nullable=True)
    checkout_session_id = db.Column(db.String(255), nullable=True, index=True)
    payment_intent_id = db.Column(db.String(255), nullable=True)
    paypal_order_id = db.Column(db.String(255), nullable=True, index=True)

    tracking_number = db.Column(db.String(120), nullable=True)
    carrier = db.Column(db.String(32), nullable=True)
    shipped_at = db.Column(db.DateTime, nullable=True)
    delivery_confirmed_at = db.Column(db.DateTime, nullable=True)

    payout_amount = db.Column(db.Float, nullable=True)
    # pending | completed | cancelled
    payout_status = db.Column(db.String(24), nullable=True)

    refund_status = db.Column(db.String(32), nullable=True)
    refund_amount = db.Column(db.Float, nullable=True)

    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancel_reason = db.Column(db.String(240), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "buyer_id": self.buyer_id,
            "seller_id": self.seller_id,
            "listing_id": self.listing_id,
            "status": self.status or "pending",
            "amount": float(self.amount or 0.0),
            "buyer_fee": float(self.buyer_fee or 0.0),
            "shipping_cost": float(self.shipping_cost or 0.0),
            "seller_commission": float(self.seller_commission or 0.0),
            "total_amount": float(self.total_amount or 0.0),
            "currency": self.currency or "ron",
            "shipping_method": self.shipping_method or "standard",
            "shipping_address": self.shipping_address or "",
            "payment_provider": self.payment_provider or "",
            "tracking_number": self.tracking_number or "",
            "carrier": self.carrier or "",
            "shipped_at": self.shipped_at.isoformat() if self.shipped_at else None,
            "delivery_confirmed_at": self.delivery_confirmed_at.isoformat() if self.delivery_confirmed_at else None,
            "payout_amount": float(self.payout_amount) if self.payout_amount is not None else None,
            "payout_status": self.payout_status or "",
            "refund_status": self.refund_status or "",
            "refund_amount": float(self.refund_amount) if self.refund_amount is not None else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "cancel_reason": self.cancel_reason or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class OrderTransition(db.Model):
    __tablename__ = "order_transitions"
    __table_args__ = (
        db.UniqueConstraint("order_id", "idempotency_key", name="uq_order_transition_order_key"),
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    from_status = db.Column(db.String(32), nullable=False, default="")
    to_status = db.Column(db.String(32), nullable=False)
    actor_type = db.Column(db.String(32), nullable=False, default="system")
    actor_id = db.Column(db.Integer, nullable=True)
    idempotency_key = db.Column(db.String(160), nullable=False)
    reason = db.Column(db.String(240), nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "order_id": int(self.order_id),
            "from_status": self.from_status or "",
            "to_status": self.to_status or "",
            "actor_type": self.actor_type or "",
            "actor_id": int(self.actor_id) if self.actor_id is not None else None,
            "idempotency_key": self.idempotency_key or "",
            "reason": self.reason or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
