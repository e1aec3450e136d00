from __future__ import annotations

import os

import resend

from app.integrations.messaging.base import EmailProvider, MessageResult

DEFAULT_FROM = "MarketPlace <noreply@marketplace.com>"


class ResendEmailProvider(EmailProvider):
    name = "resend"

    def __init__(self, *, api_key: str, sender: str = DEFAULT_FROM):
        self.api_key = api_key
        self.sender = sender or DEFAULT_FROM

    def send_email(self, *, to: str, subject: str, html: str, text: str = "") -> MessageResult:
        params = {
            "from": self.sender,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        if text:
            params["text"] = text
        resend.api_key = self.api_key
        try:
            sent = resend.Emails.send(params)
        except Exception as e:
            return MessageResult(ok=False, code="RESEND_PROVIDER_DOWN", message=str(e)[:200])
        ref = ""
        if isinstance(sent, dict):
            ref = str(sent.get("id") or "")
        return MessageResult(ok=True, code="OK", message="sent", provider_ref=ref)


def resend_health() -> dict:
    missing = []
    if not (os.getenv("RESEND_API_KEY") or "").strip():
        missing.append("RESEND_API_KEY")
    return {"missing": missing}
