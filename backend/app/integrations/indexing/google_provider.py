from __future__ import annotations

import json
import logging

import requests
from google.auth import exceptions as google_auth_exceptions
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from app.integrations.common import IntegrationMisconfiguredError
from app.integrations.indexing.base import IndexingProvider, IndexingResult

logger = logging.getLogger(__name__)

INDEXING_SCOPE = "https://www.googleapis.com/auth/indexing"
INDEXING_ENDPOINT = "https://indexing.googleapis.com/v3/urlNotifications:publish"
SITEMAP_PING_ENDPOINTS = {
    "google": "https://www.google.com/ping",
    "bing": "https://www.bing.com/ping",
}


def _map_indexing_error(status: int) -> str:
    if status in (401, 403):
        return "GOOGLE_AUTH_FAILED"
    if status == 429:
        return "GOOGLE_QUOTA_EXCEEDED"
    if status >= 500:
        return "GOOGLE_PROVIDER_DOWN"
    return "GOOGLE_INVALID_REQUEST"


def ping_sitemaps(sitemap_url: str) -> dict[str, bool]:
    results = {}
    for engine, endpoint in SITEMAP_PING_ENDPOINTS.items():
        try:
            r = requests.get(endpoint, params={"sitemap": sitemap_url}, timeout=10)
            results[engine] = 200 <= r.status_code < 300
        except requests.RequestException as e:
            logger.warning("sitemap_ping_failed engine=%s err=%s", engine, e)
            results[engine] = False
    return results


class GoogleIndexingProvider(IndexingProvider):
    """Google Indexing API with a service-account token, sitemap ping as fallback."""

    name = "google"

    def __init__(self, *, service_account_json: str = ""):
        self._credentials = None
        raw = (service_account_json or "").strip()
        if raw:
            try:
                info = json.loads(raw)
            except ValueError as e:
                raise IntegrationMisconfiguredError("INTEGRATION_MISCONFIGURED:GOOGLE_SERVICE_ACCOUNT_JSON is not JSON") from e
            if not isinstance(info, dict):
                raise IntegrationMisconfiguredError("INTEGRATION_MISCONFIGURED:GOOGLE_SERVICE_ACCOUNT_JSON must be an object")
            try:
                self._credentials = service_account.Credentials.from_service_account_info(info, scopes=[INDEXING_SCOPE])
            except (KeyError, ValueError) as e:
                raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:GOOGLE_SERVICE_ACCOUNT_JSON {e}") from e

    @property
    def has_credentials(self) -> bool:
        return self._credentials is not None

    def _access_token(self) -> str:
        if not self._credentials.valid:
            self._credentials.refresh(GoogleAuthRequest())
        return self._credentials.token

    def publish(self, *, url: str, action: str = "URL_UPDATED") -> IndexingResult:
        if not self.has_credentials:
            return IndexingResult(ok=False, code="NO_CREDENTIALS", message="service account not configured")
        try:
            token = self._access_token()
        except google_auth_exceptions.RefreshError as e:
            return IndexingResult(ok=False, code="GOOGLE_AUTH_FAILED", message=str(e)[:200])
        except google_auth_exceptions.TransportError as e:
            return IndexingResult(ok=False, code="GOOGLE_PROVIDER_DOWN", message=str(e)[:200])
        try:
            r = requests.post(
                INDEXING_ENDPOINT,
                json={"url": url, "type": action},
                headers={"Authorization": f"Bearer {token}"},
                timeout=15,
            )
        except requests.RequestException as e:
            return IndexingResult(ok=False, code="GOOGLE_PROVIDER_DOWN", message=str(e)[:200])
        try:
            data = r.json() if r.content else {}
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        if 200 <= r.status_code < 300:
            return IndexingResult(ok=True, code="OK", raw=data)
        error = data.get("error")
        detail = error.get("message") if isinstance(error, dict) else error
        message = str(detail or f"http_{r.status_code}")
        return IndexingResult(ok=False, code=_map_indexing_error(r.status_code), message=message[:200], raw=data)

    def ping_sitemap(self, sitemap_url: str) -> dict[str, bool]:
        return ping_sitemaps(sitemap_url)
