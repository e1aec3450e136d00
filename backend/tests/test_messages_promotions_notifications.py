from __future__ import annotations

import unittest
from datetime import datetime, timedelta

from app.extensions import db
from app.models import Notification, Promotion
from app.services.promotions import expire_promotions
from piata_test_support import PROMOTION_WEBHOOK_SECRET, ApiTestCase


class ConversationsTestCase(ApiTestCase):
    def setUp(self):
        self.seller_id = self.make_user(seller=True)
        self.buyer_id = self.make_user(display_name="Andrei")
        self.listing_id = self.make_listing(self.seller_id)

    def test_conversation_is_reused_and_tracks_unread(self):
        first = self.client.post("/api/conversations", json={"listing_id": self.listing_id, "message": "Mai e disponibil?"}, headers=self.auth(self.buyer_id))
        self.assertEqual(first.status_code, 201, first.get_json())
        conversation_id = first.get_json()["conversation"]["id"]
        again = self.client.post("/api/conversations", json={"listing_id": self.listing_id}, headers=self.auth(self.buyer_id))
        self.assertEqual(again.status_code, 200)
        self.assertEqual(again.get_json()["conversation"]["id"], conversation_id)

        items = self.client.get("/api/conversations", headers=self.auth(self.seller_id)).get_json()["items"]
        self.assertEqual(items[0]["unread_count"], 1)
        self.assertEqual(items[0]["last_message"]["content"], "Mai e disponibil?")

        reply = self.client.post(f"/api/conversations/{conversation_id}/messages", json={"content": "Da"}, headers=self.auth(self.seller_id))
        self.assertEqual(reply.status_code, 201)
        read = self.client.post(f"/api/conversations/{conversation_id}/read", headers=self.auth(self.seller_id))
        self.assertEqual(read.get_json()["updated"], 1)

        thread = self.client.get(f"/api/conversations/{conversation_id}/messages", headers=self.auth(self.buyer_id)).get_json()["items"]
        self.assertEqual([m["content"] for m in thread], ["Mai e disponibil?", "Da"])

        with self.app.app_context():
            note = Notification.query.filter_by(user_id=self.seller_id, type="message").first()
            self.assertIn("Andrei", note.title)

    def test_outsiders_and_bad_input(self):
        conversation_id = self.client.post("/api/conversations", json={"listing_id": self.listing_id}, headers=self.auth(self.buyer_id)).get_json()["conversation"]["id"]
        stranger = self.make_user()
        res = self.client.get(f"/api/conversations/{conversation_id}/messages", headers=self.auth(stranger))
        self.assertEqual(res.status_code, 403)
        empty = self.client.post(f"/api/conversations/{conversation_id}/messages", json={"content": "   "}, headers=self.auth(self.buyer_id))
        self.assertEqual(empty.get_json()["error"], "EMPTY_MESSAGE")
        own = self.client.post("/api/conversations", json={"listing_id": self.listing_id}, headers=self.auth(self.seller_id))
        self.assertEqual(own.get_json()["error"], "OWN_LISTING")
        missing = self.client.post("/api/conversations", json={}, headers=self.auth(self.buyer_id))
        self.assertEqual(missing.status_code, 400)


class PromotionsTestCase(ApiTestCase):
    def setUp(self):
        self.seller_id = self.make_user(seller=True)
        self.listing_id = self.make_listing(self.seller_id)

    def test_social_share_has_daily_cooldown_per_platform(self):
        first = self.client.post("/api/promotions/social", json={"listing_id": self.listing_id, "platform": "facebook"}, headers=self.auth(self.seller_id))
        self.assertEqual(first.status_code, 201)
        promo = first.get_json()["promotion"]
        self.assertEqual(promo["promotion_type"], "social_share")
        again = self.client.post("/api/promotions/social", json={"listing_id": self.listing_id, "platform": "facebook"}, headers=self.auth(self.seller_id))
        self.assertEqual(again.get_json()["error"], "PROMOTION_COOLDOWN")
        other = self.client.post("/api/promotions/social", json={"listing_id": self.listing_id, "platform": "whatsapp"}, headers=self.auth(self.seller_id))
        self.assertEqual(other.status_code, 201)
        unknown = self.client.post("/api/promotions/social", json={"listing_id": self.listing_id, "platform": "myspace"}, headers=self.auth(self.seller_id))
        self.assertEqual(unknown.get_json()["error"], "INVALID_PLATFORM")

    def test_only_owner_promotes(self):
        other = self.make_user()
        res = self.client.post("/api/promotions/paid", json={"listing_id": self.listing_id}, headers=self.auth(other))
        self.assertEqual(res.status_code, 403)
        bad = self.client.post("/api/promotions/paid", json={"listing_id": "abc"}, headers=self.auth(self.seller_id))
        self.assertEqual(bad.get_json()["error"], "INVALID_LISTING_ID")

    def test_paid_promotion_with_mock_provider_activates_immediately(self):
        res = self.client.post("/api/promotions/paid", json={"listing_id": self.listing_id}, headers=self.auth(self.seller_id))
        self.assertEqual(res.status_code, 201, res.get_json())
        body = res.get_json()
        self.assertEqual(body["amountPaid"], 3.0)
        self.assertEqual(body["promotion"]["promotion_type"], "paid")
        active = self.client.get("/api/promotions").get_json()["items"]
        self.assertIn(self.listing_id, [p["listing_id"] for p in active])

        again = self.client.post("/api/promotions/paid", json={"listing_id": self.listing_id}, headers=self.auth(self.seller_id))
        self.assertEqual(again.get_json()["error"], "PROMOTION_ACTIVE")

    def test_promotion_webhook_activates_paid_promotion(self):
        listing_id = self.make_listing(self.seller_id)
        event = {
            "id": "evt_promo_1",
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "amount_total": 300,
                    "payment_intent": "pi_promo_1",
                    "metadata": {"promotion_type": "paid", "listing_id": str(listing_id), "user_id": str(self.seller_id)},
                }
            },
        }
        res = self.send_webhook(event, path="/api/webhooks/promotions", secret=PROMOTION_WEBHOOK_SECRET)
        self.assertEqual(res.status_code, 200, res.get_json())
        dup = self.send_webhook(event, path="/api/webhooks/promotions", secret=PROMOTION_WEBHOOK_SECRET)
        self.assertTrue(dup.get_json()["duplicate"])
        with self.app.app_context():
            rows = Promotion.query.filter_by(listing_id=listing_id, promotion_type="paid").all()
            self.assertEqual(len(rows), 1)
            self.assertEqual(rows[0].payment_intent_id, "pi_promo_1")

    def test_order_secret_does_not_validate_promotion_webhooks(self):
        raw_event = {"id": "evt_promo_wrong_secret", "type": "checkout.session.completed", "data": {"object": {}}}
        res = self.send_webhook(raw_event, path="/api/webhooks/promotions")
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["error"], "INVALID_SIGNATURE")

    def test_expired_promotions_are_switched_off(self):
        now = datetime.utcnow()
        with self.app.app_context():
            db.session.add(Promotion(
                listing_id=self.listing_id,
                user_id=self.seller_id,
                promotion_type="paid",
                amount_paid=3.0,
                starts_at=now - timedelta(days=8),
                ends_at=now - timedelta(days=1),
            ))
            db.session.commit()
            self.assertGreaterEqual(expire_promotions(), 1)
            self.assertEqual(Promotion.query.filter(Promotion.ends_at <= now, Promotion.is_active.is_(True)).count(), 0)


class NotificationsTestCase(ApiTestCase):
    def setUp(self):
        self.user_id = self.make_user()

    def _notify(self, ntype: str = "order", **data):
        from app.services.notifications import notify

        with self.app.app_context():
            row = notify(self.user_id, ntype, "Titlu", "Mesaj", data)
            db.session.commit()
            return int(row.id)

    def test_inbox_read_flags(self):
        first = self._notify("new_order", order_id=1)
        self._notify("message", conversation_id=7)
        self.assertEqual(self.client.get("/api/notifications/unread-count", headers=self.auth(self.user_id)).get_json()["count"], 2)

        items = self.client.get("/api/notifications", headers=self.auth(self.user_id)).get_json()["items"]
        urls = {i["type"]: i["url"] for i in items}
        self.assertEqual(urls["message"], "/messages?conversation=7")
        self.assertEqual(urls["new_order"], "/orders")

        read = self.client.post(f"/api/notifications/{first}/read", headers=self.auth(self.user_id))
        self.assertTrue(read.get_json()["notification"]["is_read"])
        all_read = self.client.post("/api/notifications/read-all", headers=self.auth(self.user_id))
        self.assertEqual(all_read.get_json()["updated"], 1)

        other = self.make_user()
        self.assertEqual(self.client.post(f"/api/notifications/{first}/read", headers=self.auth(other)).status_code, 404)

    def test_push_preview_routes_by_type(self):
        res = self.client.post("/api/notifications/push-preview", json={"type": "tracking_reminder", "message": "Adaugă AWB"})
        payload = res.get_json()["payload"]
        self.assertEqual(payload["data"]["url"], "/orders?section=selling")
        self.assertEqual(payload["body"], "Adaugă AWB")
        self.assertTrue(payload["title"])

    def test_push_subscription_upsert_and_delete(self):
        sub = {"endpoint": "https://push.example/abc", "keys": {"p256dh": "k1", "auth": "a1"}}
        created = self.client.post("/api/push/subscriptions", json=sub, headers=self.auth(self.user_id))
        self.assertEqual(created.status_code, 201)
        sub["keys"]["auth"] = "a2"
        updated = self.client.post("/api/push/subscriptions", json=sub, headers=self.auth(self.user_id))
        self.assertEqual(updated.status_code, 200)
        missing = self.client.post("/api/push/subscriptions", json={"endpoint": "x"}, headers=self.auth(self.user_id))
        self.assertEqual(missing.get_json()["error"], "MISSING_FIELDS")
        deleted = self.client.delete("/api/push/subscriptions", json={"endpoint": sub["endpoint"]}, headers=self.auth(self.user_id))
        self.assertEqual(deleted.get_json()["deleted"], 1)

    def test_send_endpoint_uses_mock_providers(self):
        sms = self.client.post(
            "/api/notifications/send",
            json={"type": "sms", "to": "0722123456", "message": "Cod: 1234"},
            headers=self.service_headers(),
        )
        self.assertEqual(sms.status_code, 200, sms.get_json())
        self.assertEqual(sms.get_json()["provider"], "mock")

        email = self.client.post(
            "/api/notifications/send",
            json={"type": "email", "to": "a@piata.test", "message": "<p>Salut</p>", "subject": "Test"},
            headers=self.service_headers(),
        )
        self.assertEqual(email.status_code, 200)

        failed = self.client.post(
            "/api/notifications/send",
            json={"type": "email", "to": "a@piata.test", "message": "[fail]"},
            headers=self.service_headers(),
        )
        self.assertEqual(failed.status_code, 502)
        self.assertEqual(failed.get_json()["error"], "RESEND_PROVIDER_DOWN")

        bad = self.client.post("/api/notifications/send", json={"type": "fax", "to": "x", "message": "y"}, headers=self.service_headers())
        self.assertEqual(bad.get_json()["error"], "INVALID_NOTIFICATION_TYPE")

        anonymous = self.client.post("/api/notifications/send", json={"type": "sms", "to": "0722123456", "message": "x"})
        self.assertEqual(anonymous.status_code, 401)


if __name__ == "__main__":
    unittest.main()
