from __future__ import annotations

from dataclasses import dataclass


@dataclass
class MessageResult:
    ok: bool
    code: str = ""
    message: str = ""
    provider_ref: str = ""
    raw: dict | None = None


class MessagingProvider:
    name = "unknown"

    def send_sms(self, *, to: str, message: str, reference: str = "") -> MessageResult:
        raise NotImplementedError


class EmailProvider:
    name = "unknown"

    def send_email(self, *, to: str, subject: str, html: str, text: str = "") -> MessageResult:
        raise NotImplementedError
