from __future__ import annotations

import os

from app.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError, integration_mode
from app.integrations.messaging.base import EmailProvider, MessagingProvider
from app.integrations.messaging.mock_provider import MockEmailProvider, MockMessagingProvider
from app.integrations.messaging.resend_provider import DEFAULT_FROM, ResendEmailProvider, resend_health
from app.integrations.messaging.twilio_provider import TwilioMessagingProvider, twilio_health


def _use_mock(settings) -> bool:
    provider = (getattr(settings, "payments_provider", "mock") or "mock").strip().lower()
    # One switch for all providers: sandbox + mock keeps smoke runs deterministic.
    return integration_mode(settings) == "sandbox" and provider == "mock"


def build_messaging_provider(settings) -> MessagingProvider:
    if integration_mode(settings) == "disabled" or not bool(getattr(settings, "sms_enabled", False)):
        raise IntegrationDisabledError("INTEGRATION_DISABLED:sms")
    if _use_mock(settings):
        return MockMessagingProvider()

    missing = twilio_health()["missing"]
    if missing:
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:missing {', '.join(missing)}")
    return TwilioMessagingProvider(
        account_sid=os.environ["TWILIO_ACCOUNT_SID"].strip(),
        auth_token=os.environ["TWILIO_AUTH_TOKEN"].strip(),
        from_number=os.environ["TWILIO_PHONE_NUMBER"].strip(),
    )


def build_email_provider(settings) -> EmailProvider:
    if integration_mode(settings) == "disabled" or not bool(getattr(settings, "email_enabled", False)):
        raise IntegrationDisabledError("INTEGRATION_DISABLED:email")
    if _use_mock(settings):
        return MockEmailProvider()

    missing = resend_health()["missing"]
    if missing:
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:missing {', '.join(missing)}")
    return ResendEmailProvider(
        api_key=os.environ["RESEND_API_KEY"].strip(),
        sender=(os.getenv("EMAIL_FROM") or DEFAULT_FROM).strip(),
    )


def messaging_health(settings) -> dict:
    mode = integration_mode(settings)
    sms_enabled = bool(getattr(settings, "sms_enabled", False))
    email_enabled = bool(getattr(settings, "email_enabled", False))
    missing = []
    if not _use_mock(settings):
        if sms_enabled:
            missing.extend(twilio_health()["missing"])
        if email_enabled:
            missing.extend(resend_health()["missing"])
    if mode == "disabled" or (not sms_enabled and not email_enabled):
        status = "disabled"
    elif missing:
        status = "misconfigured"
    else:
        status = "configured"
    return {
        "status": status,
        "mode": mode,
        "sms_enabled": sms_enabled,
        "email_enabled": email_enabled,
        "missing": missing,
    }
