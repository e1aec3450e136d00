from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class IndexingResult:
    ok: bool
    code: str = ""
    message: str = ""
    raw: dict = field(default_factory=dict)


class IndexingProvider:
    name = "unknown"
    has_credentials = False

    def publish(self, *, url: str, action: str = "URL_UPDATED") -> IndexingResult:
        raise NotImplementedError

    def ping_sitemap(self, sitemap_url: str) -> dict[str, bool]:
        raise NotImplementedError
