from __future__ import annotations

from dataclasses import dataclass

from app.extensions import db
from app.models import PlatformFee
from app.utils.money import money_major_to_minor, money_minor_to_major, percent_of_minor

DEFAULT_BUYER_FEE = 2.00
DEFAULT_SELLER_COMMISSION_PERCENT = 20.0
DEFAULT_WEEKLY_PROMOTION_FEE = 3.00

SHIPPING_COSTS_MINOR = {
    "express": 599,
    "overnight": 999,
}

BUYER_FEE_TYPES = ("buyer_fee", "buyer_service_fee")

DEFAULT_FEES = (
    {"fee_type": "buyer_fee", "amount": DEFAULT_BUYER_FEE, "is_percentage": False, "description": "Taxă de protecție cumpărător"},
    {"fee_type": "seller_commission", "amount": DEFAULT_SELLER_COMMISSION_PERCENT, "is_percentage": True, "description": "Comision vânzător"},
    {"fee_type": "weekly_promotion", "amount": DEFAULT_WEEKLY_PROMOTION_FEE, "is_percentage": False, "description": "Promovare 7 zile"},
)


@dataclass(frozen=True)
class OrderFees:
    item_minor: int
    buyer_fee_minor: int
    shipping_minor: int
    seller_commission_minor: int

    @property
    def total_minor(self) -> int:
        return self.item_minor + self.buyer_fee_minor + self.shipping_minor

    @property
    def net_payout_minor(self) -> int:
        return max(0, self.item_minor - self.seller_commission_minor)

    def as_major(self) -> dict:
        return {
            "item": money_minor_to_major(self.item_minor),
            "buyer_fee": money_minor_to_major(self.buyer_fee_minor),
            "shipping": money_minor_to_major(self.shipping_minor),
            "seller_commission": money_minor_to_major(self.seller_commission_minor),
            "total": money_minor_to_major(self.total_minor),
            "net_payout": money_minor_to_major(self.net_payout_minor),
        }


def active_fee(*fee_types: str) -> PlatformFee | None:
    for fee_type in fee_types:
        row = (
            PlatformFee.query.filter_by(fee_type=fee_type, is_active=True)
            .order_by(PlatformFee.id.desc())
            .first()
        )
        if row is not None:
            return row
    return None


def _apply_fee(row: PlatformFee | None, item_minor: int, *, default_amount: float, default_is_percentage: bool) -> int:
    amount = float(row.amount) if row is not None else float(default_amount)
    is_percentage = bool(row.is_percentage) if row is not None else default_is_percentage
    if is_percentage:
        return percent_of_minor(item_minor, amount)
    return money_major_to_minor(amount)


def buyer_fee_minor(item_minor: int) -> int:
    return _apply_fee(active_fee(*BUYER_FEE_TYPES), item_minor, default_amount=DEFAULT_BUYER_FEE, default_is_percentage=False)


def seller_commission_minor(item_minor: int) -> int:
    commission = _apply_fee(
        active_fee("seller_commission"),
        item_minor,
        default_amount=DEFAULT_SELLER_COMMISSION_PERCENT,
        default_is_percentage=True,
    )
    return min(commission, item_minor)


def shipping_cost_minor(method: str | None) -> int:
    return int(SHIPPING_COSTS_MINOR.get((method or "").strip().lower(), 0))


def compute_order_fees(item_amount: float, shipping_method: str | None = None) -> OrderFees:
    item_minor = money_major_to_minor(item_amount)
    return OrderFees(
        item_minor=item_minor,
        buyer_fee_minor=buyer_fee_minor(item_minor),
        shipping_minor=shipping_cost_minor(shipping_method),
        seller_commission_minor=seller_commission_minor(item_minor),
    )


def weekly_promotion_fee() -> float:
    row = active_fee("weekly_promotion")
    if row is None or float(row.amount or 0) <= 0:
        return DEFAULT_WEEKLY_PROMOTION_FEE
    return float(row.amount)


def seed_default_fees() -> int:
    created = 0
    for fee in DEFAULT_FEES:
        if PlatformFee.query.filter_by(fee_type=fee["fee_type"]).first() is not None:
            continue
        db.session.add(PlatformFee(is_active=True, **fee))
        created += 1
    db.session.commit()
    return created
