from __future__ import annotations

from datetime import datetime

from flask import current_app

from app.extensions import db
from app.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from app.integrations.indexing.factory import build_indexing_provider
from app.models import IndexingQueueItem
from app.services.errors import ServiceError
from app.utils.integration_settings import get_settings

INDEXING_ACTIONS = ("URL_UPDATED", "URL_DELETED")
MAX_SUBMIT_ATTEMPTS = 3


def site_url() -> str:
    return str(current_app.config.get("PUBLIC_SITE_URL") or "http://localhost:5173").rstrip("/")


def listing_url(listing_id: int) -> str:
    return f"{site_url()}/listing/{int(listing_id)}"


def sitemap_url() -> str:
    return f"{site_url()}/sitemap.xml"


def enqueue_url(url: str, action: str = "URL_UPDATED") -> IndexingQueueItem:
    """Queue ``url`` for the next indexing run; the caller commits."""
    action = (action or "URL_UPDATED").strip().upper()
    if action not in INDEXING_ACTIONS:
        raise ValueError(f"unsupported indexing action {action!r}")
    row = IndexingQueueItem(url=(url or "").strip()[:1024], action=action, status="pending")
    db.session.add(row)
    return row


def _provider():
    try:
        return build_indexing_provider(get_settings())
    except IntegrationDisabledError as e:
        raise ServiceError("Indexing is disabled", status=503, code="INDEXING_DISABLED") from e
    except IntegrationMisconfiguredError as e:
        raise ServiceError("Indexing is misconfigured", status=500, code="INDEXING_MISCONFIGURED") from e


def submit_url(url: str, action: str = "URL_UPDATED") -> dict:
    url = (url or "").strip()
    if not url:
        raise ServiceError("URL is required", code="MISSING_URL")
    if action not in INDEXING_ACTIONS:
        raise ServiceError("action must be URL_UPDATED or URL_DELETED", code="INVALID_ACTION")
    provider = _provider()
    if not provider.has_credentials:
        pings = provider.ping_sitemap(sitemap_url())
        return {"success": any(pings.values()), "method": "sitemap_ping", "results": pings}
    result = provider.publish(url=url, action=action)
    if not result.ok:
        current_app.logger.warning("indexing_publish_failed url=%s code=%s", url, result.code)
        raise ServiceError(result.message or "Indexing request failed", status=502, code=result.code)
    return {"success": True, "method": "indexing_api", "url": url}


def ping_search_engines() -> dict:
    return _provider().ping_sitemap(sitemap_url())


def process_indexing_queue(limit: int = 50) -> dict:
    rows = (
        IndexingQueueItem.query.filter_by(status="pending")
        .order_by(IndexingQueueItem.created_at.asc(), IndexingQueueItem.id.asc())
        .limit(max(1, int(limit)))
        .all()
    )
    summary = {"processed": 0, "submitted": 0, "failed": 0, "queued_no_credentials": 0}
    if not rows:
        return summary
    try:
        provider = build_indexing_provider(get_settings())
    except (IntegrationDisabledError, IntegrationMisconfiguredError) as e:
        current_app.logger.info("indexing_queue_skipped reason=%s", e)
        summary["skipped"] = True
        return summary

    pinged = False
    now = datetime.utcnow()
    for row in rows:
        summary["processed"] += 1
        row.attempts = int(row.attempts or 0) + 1
        if not provider.has_credentials:
            if not pinged:
                provider.ping_sitemap(sitemap_url())
                pinged = True
            row.status = "queued_no_credentials"
            summary["queued_no_credentials"] += 1
            continue
        result = provider.publish(url=row.url, action=row.action)
        if result.ok:
            row.status = "submitted"
            row.submitted_at = now
            row.last_error = None
            summary["submitted"] += 1
        else:
            row.last_error = f"{result.code}:{result.message}"[:240]
            if row.attempts >= MAX_SUBMIT_ATTEMPTS:
                row.status = "failed"
                summary["failed"] += 1
    db.session.commit()
    current_app.logger.info(
        "indexing_queue_processed processed=%s submitted=%s failed=%s",
        summary["processed"],
        summary["submitted"],
        summary["failed"],
    )
    return summary
