from __future__ import annotations

import os

from app.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError, integration_mode
from app.integrations.payments.base import PaymentsProvider, PayPalProvider
from app.integrations.payments.mock_provider import MockPaymentsProvider, MockPayPalProvider
from app.integrations.payments.paypal_provider import (
    PAYPAL_LIVE_BASE,
    PAYPAL_SANDBOX_BASE,
    PayPalRestProvider,
    paypal_health,
)
from app.integrations.payments.stripe_provider import StripePaymentsProvider, stripe_health

WEBHOOK_SECRET_ENV = {
    "orders": "STRIPE_WEBHOOK_SECRET",
    "promotions": "STRIPE_PROMOTION_WEBHOOK_SECRET",
}


def _provider_name(settings) -> str:
    return (getattr(settings, "payments_provider", "mock") or "mock").strip().lower()


def build_payments_provider(settings) -> PaymentsProvider:
    mode = integration_mode(settings)
    if mode == "disabled":
        raise IntegrationDisabledError("INTEGRATION_DISABLED:payments")

    provider = _provider_name(settings)
    if provider == "mock":
        if mode == "live":
            raise IntegrationMisconfiguredError("INTEGRATION_MISCONFIGURED:mock provider in live mode")
        return MockPaymentsProvider()
    if provider != "stripe":
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:payments_provider={provider}")

    secret_key = (os.getenv("STRIPE_SECRET_KEY") or "").strip()
    if not secret_key:
        raise IntegrationMisconfiguredError("INTEGRATION_MISCONFIGURED:missing STRIPE_SECRET_KEY")
    return StripePaymentsProvider(secret_key=secret_key)


def build_paypal_provider(settings) -> PayPalProvider:
    mode = integration_mode(settings)
    if mode == "disabled" or not bool(getattr(settings, "paypal_enabled", False)):
        raise IntegrationDisabledError("INTEGRATION_DISABLED:paypal")
    if _provider_name(settings) == "mock":
        return MockPayPalProvider()

    client_id = (os.getenv("PAYPAL_CLIENT_ID") or "").strip()
    client_secret = (os.getenv("PAYPAL_CLIENT_SECRET") or "").strip()
    missing = [name for name, val in (("PAYPAL_CLIENT_ID", client_id), ("PAYPAL_CLIENT_SECRET", client_secret)) if not val]
    if missing:
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:missing {', '.join(missing)}")
    default_base = PAYPAL_LIVE_BASE if mode == "live" else PAYPAL_SANDBOX_BASE
    base_url = (os.getenv("PAYPAL_API_BASE") or default_base).strip()
    return PayPalRestProvider(client_id=client_id, client_secret=client_secret, base_url=base_url)


def webhook_secret(kind: str) -> str:
    env_name = WEBHOOK_SECRET_ENV.get(kind)
    if not env_name:
        raise ValueError(f"unknown webhook kind {kind!r}")
    secret = (os.getenv(env_name) or "").strip()
    if not secret:
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:missing {env_name}")
    return secret


def payment_health(settings) -> dict:
    mode = integration_mode(settings)
    provider = _provider_name(settings)
    missing = []
    if mode != "disabled" and provider == "stripe":
        missing.extend(stripe_health().get("missing", []))
    if mode != "disabled" and provider == "stripe" and bool(getattr(settings, "paypal_enabled", False)):
        missing.extend(paypal_health().get("missing", []))
    if mode == "disabled":
        status = "disabled"
    elif missing:
        status = "misconfigured"
    else:
        status = "configured"
    return {
        "status": status,
        "mode": mode,
        "provider": provider,
        "paypal_enabled": bool(getattr(settings, "paypal_enabled", False)),
        "missing": missing,
    }
