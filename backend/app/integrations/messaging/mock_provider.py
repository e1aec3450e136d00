from __future__ import annotations

import os
import uuid

from app.integrations.messaging.base import EmailProvider, MessageResult, MessagingProvider


def _force_failure(message: str) -> bool:
    msg = (message or "").lower()
    return "[fail]" in msg or (os.getenv("MOCK_NOTIFY_FORCE_FAIL") or "").strip() == "1"


class MockMessagingProvider(MessagingProvider):
    name = "mock"

    def send_sms(self, *, to: str, message: str, reference: str = "") -> MessageResult:
        if _force_failure(message):
            return MessageResult(ok=False, code="TWILIO_PROVIDER_DOWN", message="mock forced failure")
        return MessageResult(ok=True, code="OK", message="mock_sent", provider_ref=f"SM{uuid.uuid4().hex[:24]}", raw={"to": to, "reference": reference})


class MockEmailProvider(EmailProvider):
    name = "mock"

    def send_email(self, *, to: str, subject: str, html: str, text: str = "") -> MessageResult:
        if _force_failure(f"{subject} {html}"):
            return MessageResult(ok=False, code="RESEND_PROVIDER_DOWN", message="mock forced failure")
        return MessageResult(ok=True, code="OK", message="mock_sent", provider_ref=f"em_{uuid.uuid4().hex[:16]}", raw={"to": to, "subject": subject})
