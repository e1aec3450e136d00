from __future__ import annotations

import hashlib
import hmac
import json
import os
import uuid

from app.integrations.common import ProviderError
from app.integrations.payments.base import (
    CaptureResult,
    CheckoutSessionResult,
    LineItem,
    PaymentsProvider,
    PayPalProvider,
    RefundResult,
    TransferResult,
)


def _force_failure(*values) -> bool:
    text = " ".join(str(v or "") for v in values).lower()
    return "[fail]" in text or (os.getenv("MOCK_PAYMENTS_FORCE_FAIL") or "").strip() == "1"


def mock_signature(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


class MockPaymentsProvider(PaymentsProvider):
    """Deterministic stand-in for sandbox runs and tests.

    Webhook signatures are a plain HMAC-SHA256 hex digest of the body.
    """

    name = "mock"

    def create_checkout_session(self, *, line_items: list[LineItem], currency: str, success_url: str, cancel_url: str, metadata: dict, customer_email: str | None = None) -> CheckoutSessionResult:
        if _force_failure(*(i.name for i in line_items)):
            raise ProviderError("MOCK_PROVIDER_DOWN", "mock forced failure")
        session_id = f"cs_mock_{uuid.uuid4().hex[:16]}"
        return CheckoutSessionResult(
            session_id=session_id,
            url=f"https://example.com/mock/checkout/{session_id}",
            provider=self.name,
            raw={
                "amount_total": sum(int(i.amount_minor) * int(i.quantity) for i in line_items),
                "currency": currency,
                "metadata": dict(metadata or {}),
            },
        )

    def create_transfer(self, *, amount_minor: int, currency: str, destination: str, transfer_group: str, metadata: dict) -> TransferResult:
        if _force_failure(destination, transfer_group):
            raise ProviderError("MOCK_PROVIDER_DOWN", "mock forced failure")
        return TransferResult(
            transfer_id=f"tr_mock_{uuid.uuid4().hex[:16]}",
            amount_minor=int(amount_minor),
            raw={"destination": destination, "transfer_group": transfer_group, "currency": currency},
        )

    def retrieve_transfer(self, transfer_id: str) -> TransferResult:
        return TransferResult(transfer_id=transfer_id, amount_minor=0, reversed="reversed" in (transfer_id or ""))

    def create_refund(self, *, payment_intent_id: str, amount_minor: int, metadata: dict) -> RefundResult:
        if _force_failure(payment_intent_id):
            raise ProviderError("MOCK_PROVIDER_DOWN", "mock forced failure")
        return RefundResult(refund_id=f"re_mock_{uuid.uuid4().hex[:16]}", status="succeeded")

    def construct_webhook_event(self, *, payload: bytes, signature: str, secret: str) -> dict:
        expected = mock_signature(payload or b"", secret or "")
        if not signature or not hmac.compare_digest(expected, signature.strip()):
            raise ProviderError("INVALID_SIGNATURE", "signature mismatch")
        try:
            event = json.loads((payload or b"{}").decode("utf-8"))
        except ValueError as e:
            raise ProviderError("INVALID_PAYLOAD", str(e)) from e
        if not isinstance(event, dict):
            raise ProviderError("INVALID_PAYLOAD", "event must be an object")
        return event


class MockPayPalProvider(PayPalProvider):
    name = "mock"

    def capture_order(self, paypal_order_id: str) -> CaptureResult:
        ref = (paypal_order_id or "").strip()
        if "captured" in ref.lower():
            return CaptureResult(status="ORDER_ALREADY_CAPTURED", raw={"id": ref})
        if _force_failure(ref) or "declined" in ref.lower():
            return CaptureResult(status="DECLINED", raw={"id": ref})
        return CaptureResult(status="COMPLETED", capture_id=f"cap_{ref[:24]}", raw={"id": ref})
