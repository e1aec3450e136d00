from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class LineItem:
    name: str
    amount_minor: int
    quantity: int = 1


@dataclass
class CheckoutSessionResult:
    session_id: str
    url: str
    provider: str
    raw: dict | None = None


@dataclass
class TransferResult:
    transfer_id: str
    amount_minor: int
    reversed: bool = False
    raw: dict | None = None


@dataclass
class RefundResult:
    refund_id: str
    status: str
    raw: dict | None = None


@dataclass
class CaptureResult:
    # COMPLETED | ORDER_ALREADY_CAPTURED | DECLINED | ...
    status: str
    capture_id: str = ""
    raw: dict = field(default_factory=dict)

    @property
    def captured(self) -> bool:
        return self.status in ("COMPLETED", "ORDER_ALREADY_CAPTURED")


class PaymentsProvider:
    name = "unknown"

    def create_checkout_session(
        self,
        *,
        line_items: list[LineItem],
        currency: str,
        success_url: str,
        cancel_url: str,
        metadata: dict,
        customer_email: str | None = None,
    ) -> CheckoutSessionResult:
        raise NotImplementedError

    def create_transfer(self, *, amount_minor: int, currency: str, destination: str, transfer_group: str, metadata: dict) -> TransferResult:
        raise NotImplementedError

    def retrieve_transfer(self, transfer_id: str) -> TransferResult:
        raise NotImplementedError

    def create_refund(self, *, payment_intent_id: str, amount_minor: int, metadata: dict) -> RefundResult:
        raise NotImplementedError

    def construct_webhook_event(self, *, payload: bytes, signature: str, secret: str) -> dict:
        raise NotImplementedError


class PayPalProvider:
    name = "unknown"

    def capture_order(self, paypal_order_id: str) -> CaptureResult:
        raise NotImplementedError
