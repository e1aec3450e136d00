from __future__ import annotations

import json
import os

import stripe

from app.integrations.common import ProviderError
from app.integrations.payments.base import (
    CheckoutSessionResult,
    LineItem,
    PaymentsProvider,
    RefundResult,
    TransferResult,
)


def _map_stripe_error(err: Exception) -> str:
    if isinstance(err, stripe.AuthenticationError):
        return "STRIPE_AUTH_FAILED"
    if isinstance(err, stripe.RateLimitError):
        return "STRIPE_RATE_LIMITED"
    if isinstance(err, stripe.CardError):
        return "STRIPE_CARD_DECLINED"
    if isinstance(err, stripe.InvalidRequestError):
        return "STRIPE_INVALID_REQUEST"
    if isinstance(err, stripe.APIConnectionError):
        return "STRIPE_PROVIDER_DOWN"
    return "STRIPE_PROVIDER_DOWN"


def _error_message(err: Exception) -> str:
    return str(getattr(err, "user_message", None) or err)[:200]


class StripePaymentsProvider(PaymentsProvider):
    name = "stripe"

    def __init__(self, *, secret_key: str):
        self.secret_key = secret_key

    def create_checkout_session(self, *, line_items: list[LineItem], currency: str, success_url: str, cancel_url: str, metadata: dict, customer_email: str | None = None) -> CheckoutSessionResult:
        items = [
            {
                "price_data": {
                    "currency": currency,
                    "product_data": {"name": item.name[:250]},
                    "unit_amount": int(item.amount_minor),
                },
                "quantity": int(item.quantity),
            }
            for item in line_items
        ]
        params = {
            "payment_method_types": ["card"],
            "line_items": items,
            "mode": "payment",
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": {k: str(v) for k, v in (metadata or {}).items()},
        }
        if customer_email:
            params["customer_email"] = customer_email
        try:
            session = stripe.checkout.Session.create(api_key=self.secret_key, **params)
        except stripe.StripeError as e:
            raise ProviderError(_map_stripe_error(e), _error_message(e)) from e
        return CheckoutSessionResult(session_id=session.id, url=session.url or "", provider=self.name)

    def create_transfer(self, *, amount_minor: int, currency: str, destination: str, transfer_group: str, metadata: dict) -> TransferResult:
        try:
            transfer = stripe.Transfer.create(
                api_key=self.secret_key,
                amount=int(amount_minor),
                currency=currency,
                destination=destination,
                transfer_group=transfer_group,
                metadata={k: str(v) for k, v in (metadata or {}).items()},
            )
        except stripe.StripeError as e:
            raise ProviderError(_map_stripe_error(e), _error_message(e)) from e
        return TransferResult(transfer_id=transfer.id, amount_minor=int(transfer.amount or 0), reversed=bool(transfer.reversed))

    def retrieve_transfer(self, transfer_id: str) -> TransferResult:
        try:
            transfer = stripe.Transfer.retrieve(transfer_id, api_key=self.secret_key)
        except stripe.StripeError as e:
            raise ProviderError(_map_stripe_error(e), _error_message(e)) from e
        return TransferResult(transfer_id=transfer.id, amount_minor=int(transfer.amount or 0), reversed=bool(transfer.reversed))

    def create_refund(self, *, payment_intent_id: str, amount_minor: int, metadata: dict) -> RefundResult:
        try:
            refund = stripe.Refund.create(
                api_key=self.secret_key,
                payment_intent=payment_intent_id,
                amount=int(amount_minor),
                metadata={k: str(v) for k, v in (metadata or {}).items()},
            )
        except stripe.StripeError as e:
            raise ProviderError(_map_stripe_error(e), _error_message(e)) from e
        return RefundResult(refund_id=refund.id, status=str(refund.status or "pending"))

    def construct_webhook_event(self, *, payload: bytes, signature: str, secret: str) -> dict:
        try:
            stripe.Webhook.construct_event(payload, signature, secret)
        except ValueError as e:
            raise ProviderError("INVALID_PAYLOAD", str(e)) from e
        except stripe.SignatureVerificationError as e:
            raise ProviderError("INVALID_SIGNATURE", str(e)) from e
        # Signature checked; work with the plain JSON from here on.
        return json.loads(payload.decode("utf-8"))


def stripe_health() -> dict:
    missing = []
    for name in ("STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET", "STRIPE_PROMOTION_WEBHOOK_SECRET"):
        if not (os.getenv(name) or "").strip():
            missing.append(name)
    return {"missing": missing}
