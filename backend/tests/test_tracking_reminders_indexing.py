from __future__ import annotations

import json
import unittest
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

from google.auth.exceptions import RefreshError

from app.extensions import db
from app.integrations.common import IntegrationMisconfiguredError
from app.integrations.indexing.google_provider import GoogleIndexingProvider
from app.models import IndexingQueueItem, Notification
from app.services.indexing import MAX_SUBMIT_ATTEMPTS, enqueue_url, process_indexing_queue
from app.services.tracking_reminders import send_tracking_reminders
from piata_test_support import ApiTestCase


class TrackingRemindersTestCase(ApiTestCase):
    def test_sellers_are_reminded_once_per_day(self):
        seller_id = self.make_user(seller=True)
        buyer_id = self.make_user()
        admin_id = self.make_user(role="admin")
        order_id = self.checkout(buyer_id, self.make_listing(seller_id, title="Chitară clasică"))["order_id"]
        self.pay_order(order_id)

        later = datetime.utcnow() + timedelta(days=3)
        with self.app.app_context():
            first = send_tracking_reminders(now=later)
            self.assertGreaterEqual(first["notified"], 1)
            self.assertGreaterEqual(first["ordersAffected"], 1)
            note = Notification.query.filter_by(user_id=seller_id, type="tracking_reminder").first()
            self.assertIn("Chitară clasică", note.message)
            self.assertIn(order_id, note.data()["order_ids"])
            self.assertEqual(Notification.query.filter_by(user_id=admin_id, type="tracking_reminder").count(), 1)

            second = send_tracking_reminders(now=later)
            self.assertEqual(second["notified"], 0)
            self.assertEqual(second["message"], "No orders missing tracking")

            next_day = send_tracking_reminders(now=later + timedelta(days=1))
            self.assertGreaterEqual(next_day["ordersAffected"], 1)

    def test_orders_with_tracking_are_skipped(self):
        seller_id = self.make_user(seller=True)
        order_id = self.shipped_order(self.make_user(), seller_id)
        with self.app.app_context():
            send_tracking_reminders(now=datetime.utcnow() + timedelta(days=10))
            for note in Notification.query.filter_by(user_id=seller_id, type="tracking_reminder").all():
                self.assertNotIn(order_id, note.data()["order_ids"])

    def test_recent_orders_are_not_reminded_yet(self):
        seller_id = self.make_user(seller=True)
        self.paid_order(self.make_user(), seller_id)
        with self.app.app_context():
            send_tracking_reminders()
            self.assertEqual(Notification.query.filter_by(user_id=seller_id, type="tracking_reminder").count(), 0)

    def test_job_endpoint_runs_reminders(self):
        res = self.client.post("/api/admin/jobs/tracking-reminders", headers=self.service_headers())
        self.assertEqual(res.status_code, 200)
        self.assertIn("notified", res.get_json()["result"])


class IndexingTestCase(ApiTestCase):
    def test_submit_requires_service_or_admin(self):
        res = self.client.post("/api/indexing/submit", json={"url": "https://piata.test/listing/1"})
        self.assertEqual(res.status_code, 401)

    def test_submit_with_credentials_uses_indexing_api(self):
        res = self.client.post("/api/indexing/submit", json={"url": "https://piata.test/listing/1"}, headers=self.service_headers())
        self.assertEqual(res.status_code, 200, res.get_json())
        body = res.get_json()
        self.assertEqual(body["method"], "indexing_api")
        self.assertEqual(body["url"], "https://piata.test/listing/1")

    def test_submit_by_listing_id_and_validation(self):
        res = self.client.post("/api/indexing/submit", json={"listing_id": 42}, headers=self.service_headers())
        self.assertTrue(res.get_json()["url"].endswith("/listing/42"))
        bad = self.client.post("/api/indexing/submit", json={"url": "https://piata.test/x", "action": "URL_PURGED"}, headers=self.service_headers())
        self.assertEqual(bad.get_json()["error"], "INVALID_ACTION")
        missing = self.client.post("/api/indexing/submit", json={}, headers=self.service_headers())
        self.assertEqual(missing.get_json()["error"], "MISSING_URL")
        failed = self.client.post("/api/indexing/submit", json={"url": "https://piata.test/[fail]"}, headers=self.service_headers())
        self.assertEqual(failed.status_code, 502)

    def test_ping_reports_each_engine(self):
        res = self.client.post("/api/indexing/ping", headers=self.service_headers())
        body = res.get_json()
        self.assertTrue(body["sitemap"].endswith("/sitemap.xml"))
        self.assertEqual(body["results"], {"google": True, "bing": True})

    def test_queue_processing_submits_pending_urls(self):
        with self.app.app_context():
            process_indexing_queue(500)
            ok = enqueue_url("https://piata.test/listing/7")
            broken = enqueue_url("https://piata.test/[fail]")
            db.session.commit()
            ok_id, broken_id = int(ok.id), int(broken.id)

        res = self.client.post("/api/indexing/process", json={"limit": 10}, headers=self.service_headers())
        body = res.get_json()
        self.assertEqual(body["processed"], 2)
        self.assertEqual(body["submitted"], 1)

        with self.app.app_context():
            self.assertEqual(db.session.get(IndexingQueueItem, ok_id).status, "submitted")
            failing = db.session.get(IndexingQueueItem, broken_id)
            self.assertEqual(failing.status, "pending")
            self.assertEqual(failing.attempts, 1)
            self.assertTrue(failing.last_error.startswith("GOOGLE_PROVIDER_DOWN"))

    def test_new_listing_is_queued(self):
        seller_id = self.make_user(seller=True)
        res = self.client.post(
            "/api/listings",
            json={"title": "Lampă vintage", "description": "Funcțională", "price": 40},
            headers=self.auth(seller_id),
        )
        self.assertEqual(res.status_code, 201, res.get_json())
        listing_id = res.get_json()["listing"]["id"]
        with self.app.app_context():
            urls = [row.url for row in IndexingQueueItem.query.all()]
            self.assertTrue(any(u.endswith(f"/listing/{listing_id}") for u in urls))


class _StubCredentials:
    def __init__(self, *, valid=True, refresh_error=None):
        self.valid = valid
        self.token = "stub-token"
        self._refresh_error = refresh_error

    def refresh(self, _request):
        if self._refresh_error is not None:
            raise self._refresh_error
        self.valid = True


def _google_provider(credentials) -> GoogleIndexingProvider:
    provider = GoogleIndexingProvider()
    provider._credentials = credentials
    return provider


def _html_502():
    response = MagicMock(status_code=502, content=b"<html>Bad Gateway</html>")
    response.json.side_effect = ValueError("Expecting value")
    return response


class GoogleIndexingProviderTestCase(ApiTestCase):
    def test_html_error_page_maps_to_provider_down(self):
        provider = _google_provider(_StubCredentials())
        with patch("app.integrations.indexing.google_provider.requests.post", return_value=_html_502()):
            result = provider.publish(url="https://piata.test/listing/9")
        self.assertFalse(result.ok)
        self.assertEqual(result.code, "GOOGLE_PROVIDER_DOWN")
        self.assertEqual(result.message, "http_502")

    def test_token_refresh_failure_maps_to_auth_failed(self):
        provider = _google_provider(_StubCredentials(valid=False, refresh_error=RefreshError("invalid_grant")))
        with patch("app.integrations.indexing.google_provider.requests.post") as post:
            result = provider.publish(url="https://piata.test/listing/9")
        post.assert_not_called()
        self.assertFalse(result.ok)
        self.assertEqual(result.code, "GOOGLE_AUTH_FAILED")

    def test_queue_records_attempt_when_google_returns_html(self):
        provider = _google_provider(_StubCredentials())
        with self.app.app_context():
            row = enqueue_url("https://piata.test/listing/html-502")
            db.session.commit()
            row_id = int(row.id)
            with patch("app.services.indexing.build_indexing_provider", return_value=provider), patch(
                "app.integrations.indexing.google_provider.requests.post", side_effect=lambda *a, **kw: _html_502()
            ):
                for _ in range(MAX_SUBMIT_ATTEMPTS):
                    summary = process_indexing_queue(500)
                    self.assertGreaterEqual(summary["processed"], 1)
            failed = db.session.get(IndexingQueueItem, row_id)
            self.assertEqual(failed.attempts, MAX_SUBMIT_ATTEMPTS)
            self.assertEqual(failed.status, "failed")
            self.assertTrue(failed.last_error.startswith("GOOGLE_PROVIDER_DOWN"))

    def test_service_account_missing_fields_is_misconfigured(self):
        with self.assertRaises(IntegrationMisconfiguredError):
            GoogleIndexingProvider(service_account_json=json.dumps({"type": "service_account", "client_email": "x@piata.test"}))
        with self.assertRaises(IntegrationMisconfiguredError):
            GoogleIndexingProvider(service_account_json="[1, 2]")

    def test_queue_skips_when_service_account_is_malformed(self):
        def build(_settings):
            return GoogleIndexingProvider(service_account_json=json.dumps({"type": "service_account"}))

        with self.app.app_context():
            enqueue_url("https://piata.test/listing/bad-account")
            db.session.commit()
            with patch("app.services.indexing.build_indexing_provider", side_effect=build):
                summary = process_indexing_queue(500)
        self.assertTrue(summary["skipped"])


if __name__ == "__main__":
    unittest.main()
