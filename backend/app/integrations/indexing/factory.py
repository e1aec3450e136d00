from __future__ import annotations

import os

from app.integrations.common import IntegrationDisabledError, integration_mode
from app.integrations.indexing.base import IndexingProvider
from app.integrations.indexing.google_provider import GoogleIndexingProvider
from app.integrations.indexing.mock_provider import MockIndexingProvider


def build_indexing_provider(settings) -> IndexingProvider:
    mode = integration_mode(settings)
    if mode == "disabled" or not bool(getattr(settings, "indexing_enabled", False)):
        raise IntegrationDisabledError("INTEGRATION_DISABLED:indexing")
    provider = (getattr(settings, "payments_provider", "mock") or "mock").strip().lower()
    if mode == "sandbox" and provider == "mock":
        return MockIndexingProvider()
    # Missing credentials is not an error: the provider falls back to sitemap pings.
    return GoogleIndexingProvider(service_account_json=os.getenv("GOOGLE_SERVICE_ACCOUNT_JSON") or "")


def indexing_health(settings) -> dict:
    mode = integration_mode(settings)
    enabled = bool(getattr(settings, "indexing_enabled", False))
    has_credentials = bool((os.getenv("GOOGLE_SERVICE_ACCOUNT_JSON") or "").strip())
    if mode == "disabled" or not enabled:
        status = "disabled"
    elif not has_credentials:
        status = "fallback_sitemap_ping"
    else:
        status = "configured"
    return {"status": status, "mode": mode, "enabled": enabled, "has_credentials": has_credentials}
