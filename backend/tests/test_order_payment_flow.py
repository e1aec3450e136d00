from __future__ import annotations

import unittest

from app.extensions import db
from app.models import Listing, Order, OrderTransition, Payout, WebhookEvent
from piata_test_support import ApiTestCase


class OrderPaymentFlowTestCase(ApiTestCase):
    def setUp(self):
        self.seller_id = self.make_user(seller=True, stripe_account=True)
        self.buyer_id = self.make_user()

    def test_checkout_creates_pending_order_with_fee_breakdown(self):
        listing_id = self.make_listing(self.seller_id, price=100.0)
        body = self.checkout(self.buyer_id, listing_id, shipping_method="express")
        order = body["order"]
        self.assertEqual(order["status"], "pending")
        self.assertEqual(order["amount"], 100.0)
        self.assertEqual(order["buyer_fee"], 2.0)
        self.assertEqual(order["shipping_cost"], 5.99)
        self.assertEqual(order["total_amount"], 107.99)
        self.assertTrue(body["sessionId"].startswith("cs_mock_"))
        self.assertTrue(body["url"])

    def test_buyer_cannot_checkout_own_listing(self):
        listing_id = self.make_listing(self.seller_id)
        res = self.client.post("/api/orders/checkout", json={"listing_id": listing_id}, headers=self.auth(self.seller_id))
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["error"], "OWN_LISTING")

    def test_checkout_requires_auth(self):
        res = self.client.post("/api/orders/checkout", json={"listing_id": 1})
        self.assertEqual(res.status_code, 401)

    def test_signed_webhook_marks_order_paid_and_listing_sold(self):
        listing_id = self.make_listing(self.seller_id)
        order_id = self.checkout(self.buyer_id, listing_id)["order_id"]
        res = self.pay_order(order_id, event_id="evt_paid_once")
        self.assertEqual(res.get_json()["status"], "processed")
        self.assertEqual(self.order_status(order_id), "paid")
        with self.app.app_context():
            self.assertTrue(db.session.get(Listing, listing_id).is_sold)
            order = db.session.get(Order, order_id)
            self.assertEqual(order.payment_intent_id, f"pi_{order_id}")

    def test_duplicate_webhook_event_is_ignored(self):
        listing_id = self.make_listing(self.seller_id)
        order_id = self.checkout(self.buyer_id, listing_id)["order_id"]
        self.pay_order(order_id, event_id="evt_dup_1")
        again = self.pay_order(order_id, event_id="evt_dup_1")
        self.assertTrue(again.get_json()["duplicate"])
        with self.app.app_context():
            self.assertEqual(WebhookEvent.query.filter_by(event_id="evt_dup_1").count(), 1)
            paid = OrderTransition.query.filter_by(order_id=order_id, to_status="paid").count()
            self.assertEqual(paid, 1)

    def test_webhook_with_bad_signature_is_rejected(self):
        listing_id = self.make_listing(self.seller_id)
        order_id = self.checkout(self.buyer_id, listing_id)["order_id"]
        event = {
            "id": "evt_forged",
            "type": "checkout.session.completed",
            "data": {"object": {"metadata": {"order_id": str(order_id)}}},
        }
        res = self.send_webhook(event, signature="not-a-valid-signature")
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["error"], "INVALID_SIGNATURE")
        self.assertEqual(self.order_status(order_id), "pending")

    def test_webhook_for_unknown_order_is_recorded_as_ignored(self):
        event = {
            "id": "evt_unknown_order",
            "type": "checkout.session.completed",
            "data": {"object": {"metadata": {"order_id": "999999"}}},
        }
        res = self.send_webhook(event)
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["status"], "ignored")

    def test_checkout_idempotency_key_replays_first_response(self):
        listing_id = self.make_listing(self.seller_id)
        headers = {**self.auth(self.buyer_id), "Idempotency-Key": f"checkout-{listing_id}"}
        first = self.client.post("/api/orders/checkout", json={"listing_id": listing_id}, headers=headers)
        second = self.client.post("/api/orders/checkout", json={"listing_id": listing_id}, headers=headers)
        self.assertEqual(first.status_code, 201)
        self.assertEqual(second.status_code, 201)
        self.assertEqual(first.get_json()["order_id"], second.get_json()["order_id"])
        with self.app.app_context():
            self.assertEqual(Order.query.filter_by(listing_id=listing_id).count(), 1)

        reused = self.client.post("/api/orders/checkout", json={"listing_id": listing_id, "shipping_method": "express"}, headers=headers)
        self.assertEqual(reused.status_code, 409)
        self.assertEqual(reused.get_json()["error"], "IDEMPOTENCY_KEY_REUSE")

    def test_full_flow_through_delivery_creates_single_payout(self):
        order_id = self.shipped_order(self.buyer_id, self.seller_id, price=100.0)
        self.assertEqual(self.order_status(order_id), "shipped")

        res = self.client.post(f"/api/orders/{order_id}/confirm-delivery", headers=self.auth(self.buyer_id))
        self.assertEqual(res.status_code, 200, res.get_json())
        body = res.get_json()
        self.assertFalse(body["replayed"])
        self.assertEqual(body["payout"]["net_amount"], 80.0)
        self.assertEqual(body["payout"]["platform_fee"], 20.0)
        self.assertEqual(body["payout"]["status"], "completed")
        self.assertTrue(body["payout"]["transfer_id"].startswith("tr_mock_"))

        replay = self.client.post(f"/api/orders/{order_id}/confirm-delivery", headers=self.auth(self.buyer_id))
        self.assertEqual(replay.status_code, 200)
        self.assertTrue(replay.get_json()["replayed"])
        with self.app.app_context():
            self.assertEqual(Payout.query.filter_by(order_id=order_id).count(), 1)

    def test_only_buyer_confirms_delivery(self):
        order_id = self.shipped_order(self.buyer_id, self.seller_id)
        res = self.client.post(f"/api/orders/{order_id}/confirm-delivery", headers=self.auth(self.seller_id))
        self.assertEqual(res.status_code, 403)
        self.assertEqual(self.order_status(order_id), "shipped")

    def test_delivery_requires_shipped_order(self):
        order_id = self.paid_order(self.buyer_id, self.seller_id)
        res = self.client.post(f"/api/orders/{order_id}/confirm-delivery", headers=self.auth(self.buyer_id))
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["error"], "INVALID_ORDER_STATUS")

    def test_payout_stays_pending_without_connected_account(self):
        seller_id = self.make_user(seller=True)
        order_id = self.shipped_order(self.buyer_id, seller_id)
        res = self.client.post(f"/api/orders/{order_id}/confirm-delivery", headers=self.auth(self.buyer_id))
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["payout"]["status"], "pending")

    def test_tracking_only_by_seller_on_paid_order(self):
        order_id = self.paid_order(self.buyer_id, self.seller_id)
        res = self.client.post(
            f"/api/orders/{order_id}/tracking",
            json={"tracking_number": "AWB1", "carrier": "sameday"},
            headers=self.auth(self.buyer_id),
        )
        self.assertEqual(res.status_code, 403)

        missing = self.client.post(f"/api/orders/{order_id}/tracking", json={"carrier": "sameday"}, headers=self.auth(self.seller_id))
        self.assertEqual(missing.status_code, 400)
        self.assertEqual(missing.get_json()["error"], "MISSING_FIELDS")

        ok = self.client.post(
            f"/api/orders/{order_id}/tracking",
            json={"tracking_number": "AWB1", "carrier": "sameday"},
            headers=self.auth(self.seller_id),
        )
        self.assertEqual(ok.status_code, 200)
        self.assertEqual(ok.get_json()["carrier_label"], "Sameday")
        self.assertIn("AWB1", ok.get_json()["tracking_url"])

    def test_cancel_paid_order_releases_listing(self):
        listing_id = self.make_listing(self.seller_id)
        order_id = self.checkout(self.buyer_id, listing_id)["order_id"]
        self.pay_order(order_id)
        res = self.client.post(f"/api/orders/{order_id}/cancel", json={"reason": "M-am răzgândit"}, headers=self.auth(self.buyer_id))
        self.assertEqual(res.status_code, 200, res.get_json())
        self.assertEqual(res.get_json()["order"]["status"], "cancelled")
        with self.app.app_context():
            listing = db.session.get(Listing, listing_id)
            self.assertFalse(listing.is_sold)
            self.assertTrue(listing.is_active)

    def test_cancel_pending_with_service_key(self):
        listing_id = self.make_listing(self.seller_id)
        order_id = self.checkout(self.buyer_id, listing_id)["order_id"]
        res = self.client.post(f"/api/orders/{order_id}/cancel-pending", json={}, headers=self.service_headers())
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.get_json()["cancelled"])
        self.assertEqual(self.order_status(order_id), "cancelled")

    def test_order_detail_includes_history_for_parties_only(self):
        order_id = self.paid_order(self.buyer_id, self.seller_id)
        res = self.client.get(f"/api/orders/{order_id}", headers=self.auth(self.seller_id))
        self.assertEqual(res.status_code, 200)
        history = [h["to_status"] for h in res.get_json()["order"]["history"]]
        self.assertEqual(history, ["pending", "paid"])

        stranger = self.make_user()
        denied = self.client.get(f"/api/orders/{order_id}", headers=self.auth(stranger))
        self.assertEqual(denied.status_code, 403)

    def test_orders_list_by_role(self):
        order_id = self.paid_order(self.buyer_id, self.seller_id)
        buying = self.client.get("/api/orders", headers=self.auth(self.buyer_id)).get_json()["items"]
        selling = self.client.get("/api/orders?role=selling", headers=self.auth(self.seller_id)).get_json()["items"]
        self.assertIn(order_id, [o["id"] for o in buying])
        self.assertIn(order_id, [o["id"] for o in selling])


class PayPalVerificationTestCase(ApiTestCase):
    paypal_enabled = True

    def setUp(self):
        self.seller_id = self.make_user(seller=True)
        self.buyer_id = self.make_user()

    def _paypal_order(self, ref: str) -> int:
        listing_id = self.make_listing(self.seller_id)
        return self.checkout(self.buyer_id, listing_id, payment_provider="paypal", paypal_order_id=ref)["order_id"]

    def test_completed_capture_marks_order_paid(self):
        order_id = self._paypal_order("PAYPAL-OK-1")
        res = self.client.post("/api/orders/verify-payment", json={"order_ids": [order_id]}, headers=self.auth(self.buyer_id))
        self.assertEqual(res.status_code, 200, res.get_json())
        self.assertTrue(res.get_json()["success"])
        self.assertEqual(self.order_status(order_id), "paid")

    def test_declined_capture_cancels_order(self):
        order_id = self._paypal_order("PAYPAL-declined-1")
        res = self.client.post("/api/orders/verify-payment", json={"order_ids": [order_id]}, headers=self.auth(self.buyer_id))
        self.assertEqual(res.status_code, 200)
        self.assertFalse(res.get_json()["success"])
        self.assertEqual(self.order_status(order_id), "cancelled")

    def test_paypal_checkout_requires_reference(self):
        listing_id = self.make_listing(self.seller_id)
        res = self.client.post(
            "/api/orders/checkout",
            json={"listing_id": listing_id, "payment_provider": "paypal"},
            headers=self.auth(self.buyer_id),
        )
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["error"], "MISSING_FIELDS")

    def test_verify_attempts_are_rate_limited(self):
        buyer_id = self.make_user()
        with self.app.app_context():
            limit = int(self.app.config["VERIFY_PAYMENT_MAX_ATTEMPTS_PER_HOUR"])
        last = None
        for _ in range(limit + 1):
            last = self.client.post("/api/orders/verify-payment", json={"order_ids": [1]}, headers=self.auth(buyer_id))
        self.assertEqual(last.status_code, 429)
        self.assertEqual(last.get_json()["error"], "RATE_LIMITED")


if __name__ == "__main__":
    unittest.main()
