from __future__ import annotations

from app.integrations.indexing.base import IndexingProvider, IndexingResult


class MockIndexingProvider(IndexingProvider):
    name = "mock"

    def __init__(self, *, has_credentials: bool = True):
        self.has_credentials = has_credentials
        self.published: list[tuple[str, str]] = []
        self.pinged: list[str] = []

    def publish(self, *, url: str, action: str = "URL_UPDATED") -> IndexingResult:
        if not self.has_credentials:
            return IndexingResult(ok=False, code="NO_CREDENTIALS", message="service account not configured")
        if "[fail]" in (url or ""):
            return IndexingResult(ok=False, code="GOOGLE_PROVIDER_DOWN", message="mock forced failure")
        self.published.append((url, action))
        return IndexingResult(ok=True, code="OK")

    def ping_sitemap(self, sitemap_url: str) -> dict[str, bool]:
        self.pinged.append(sitemap_url)
        return {"google": True, "bing": True}
