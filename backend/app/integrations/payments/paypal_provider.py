from __future__ import annotations

import os

import requests

from app.integrations.common import ProviderError
from app.integrations.payments.base import CaptureResult, PayPalProvider

PAYPAL_LIVE_BASE = "https://api-m.paypal.com"
PAYPAL_SANDBOX_BASE = "https://api-m.sandbox.paypal.com"


def _map_paypal_error(status: int) -> str:
    if status in (401, 403):
        return "PAYPAL_AUTH_FAILED"
    if status == 429:
        return "PAYPAL_RATE_LIMITED"
    if status >= 500:
        return "PAYPAL_PROVIDER_DOWN"
    return "PAYPAL_INVALID_REQUEST"


class PayPalRestProvider(PayPalProvider):
    name = "paypal"

    def __init__(self, *, client_id: str, client_secret: str, base_url: str):
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = base_url.rstrip("/")

    def _access_token(self) -> str:
        try:
            r = requests.post(
                f"{self.base_url}/v1/oauth2/token",
                auth=(self.client_id, self.client_secret),
                data={"grant_type": "client_credentials"},
                timeout=15,
            )
        except requests.RequestException as e:
            raise ProviderError("PAYPAL_PROVIDER_DOWN", str(e)[:200]) from e
        data = r.json() if r.content else {}
        if r.status_code != 200 or not data.get("access_token"):
            raise ProviderError(_map_paypal_error(r.status_code), str(data.get("error_description") or f"http_{r.status_code}"))
        return str(data["access_token"])

    def capture_order(self, paypal_order_id: str) -> CaptureResult:
        token = self._access_token()
        try:
            r = requests.post(
                f"{self.base_url}/v2/checkout/orders/{paypal_order_id}/capture",
                headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
                timeout=25,
            )
        except requests.RequestException as e:
            raise ProviderError("PAYPAL_PROVIDER_DOWN", str(e)[:200]) from e
        data = r.json() if r.content else {}
        if 200 <= r.status_code < 300:
            capture_id = ""
            for unit in data.get("purchase_units") or []:
                for capture in ((unit.get("payments") or {}).get("captures") or []):
                    capture_id = capture_id or str(capture.get("id") or "")
            return CaptureResult(status=str(data.get("status") or ""), capture_id=capture_id, raw=data)
        issues = [str(d.get("issue") or "") for d in (data.get("details") or []) if isinstance(d, dict)]
        if "ORDER_ALREADY_CAPTURED" in issues:
            return CaptureResult(status="ORDER_ALREADY_CAPTURED", raw=data)
        if r.status_code == 422:
            return CaptureResult(status=issues[0] if issues else "UNPROCESSABLE", raw=data)
        raise ProviderError(_map_paypal_error(r.status_code), str(data.get("message") or f"http_{r.status_code}"), raw=data)


def paypal_health() -> dict:
    missing = []
    for name in ("PAYPAL_CLIENT_ID", "PAYPAL_CLIENT_SECRET"):
        if not (os.getenv(name) or "").strip():
            missing.append(name)
    return {"missing": missing}
