from __future__ import annotations

import os

import requests

from app.integrations.messaging.base import MessageResult, MessagingProvider

TWILIO_BASE = "https://api.twilio.com/2010-04-01"


def _map_twilio_error(status: int, error_code: int | None) -> str:
    if status in (401, 403):
        return "TWILIO_AUTH_FAILED"
    if status == 429:
        return "TWILIO_RATE_LIMITED"
    if status >= 500:
        return "TWILIO_PROVIDER_DOWN"
    if error_code in (21606, 21212):
        return "TWILIO_INVALID_SENDER"
    return "TWILIO_INVALID_RECIPIENT"


def normalize_phone(raw: str) -> str:
    phone = (raw or "").strip().replace(" ", "")
    if phone and not phone.startswith("+"):
        phone = f"+{phone}"
    return phone


class TwilioMessagingProvider(MessagingProvider):
    name = "twilio"

    def __init__(self, *, account_sid: str, auth_token: str, from_number: str):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number

    def send_sms(self, *, to: str, message: str, reference: str = "") -> MessageResult:
        payload = {
            "To": normalize_phone(to),
            "From": self.from_number,
            "Body": message,
        }
        try:
            r = requests.post(
                f"{TWILIO_BASE}/Accounts/{self.account_sid}/Messages.json",
                data=payload,
                auth=(self.account_sid, self.auth_token),
                timeout=12,
            )
            data = r.json() if r.content else {}
        except requests.Timeout:
            return MessageResult(ok=False, code="TWILIO_PROVIDER_DOWN", message="timeout")
        except (requests.RequestException, ValueError) as e:
            return MessageResult(ok=False, code="TWILIO_PROVIDER_DOWN", message=str(e)[:200])
        if 200 <= r.status_code < 300:
            return MessageResult(ok=True, code="OK", message="sent", provider_ref=str(data.get("sid") or ""), raw=data)
        error_code = data.get("code") if isinstance(data.get("code"), int) else None
        return MessageResult(
            ok=False,
            code=_map_twilio_error(r.status_code, error_code),
            message=str(data.get("message") or f"http_{r.status_code}")[:200],
            raw=data,
        )


def twilio_health() -> dict:
    missing = []
    for name in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_PHONE_NUMBER"):
        if not (os.getenv(name) or "").strip():
            missing.append(name)
    return {"missing": missing}
