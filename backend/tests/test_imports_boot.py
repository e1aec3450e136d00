from __future__ import annotations

import importlib
import unittest


class ImportsBootTestCase(unittest.TestCase):
    def test_import_create_app(self):
        module = importlib.import_module("app")
        self.assertTrue(callable(getattr(module, "create_app", None)))

    def test_import_segments(self):
        for name in (
            "segment_auth",
            "segment_listings",
            "segment_orders_api",
            "segment_payouts",
            "segment_reviews",
            "segment_messages",
            "segment_promotions",
            "segment_notifications",
            "segment_payment_webhooks",
            "segment_fraud",
            "segment_indexing",
            "segment_admin",
        ):
            self.assertIsNotNone(importlib.import_module(f"app.segments.{name}"))

    def test_import_task_modules(self):
        for name in ("app.celery_app", "app.tasks.marketplace_tasks", "app.tasks.notification_tasks"):
            self.assertIsNotNone(importlib.import_module(name))


if __name__ == "__main__":
    unittest.main()
