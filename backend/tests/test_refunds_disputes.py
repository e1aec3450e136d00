from __future__ import annotations

import unittest

from app.extensions import db
from app.models import Listing, Order, Payout, Refund
from piata_test_support import ApiTestCase


class RefundsTestCase(ApiTestCase):
    def setUp(self):
        self.seller_id = self.make_user(seller=True)
        self.buyer_id = self.make_user()
        self.admin_id = self.make_user(role="admin")

    def _request(self, order_id: int, user_id: int, **payload):
        return self.client.post(f"/api/orders/{order_id}/refund-request", json=payload, headers=self.auth(user_id))

    def test_partial_refund_request_then_admin_processes(self):
        order_id = self.paid_order(self.buyer_id, self.seller_id, price=100.0)
        res = self._request(order_id, self.buyer_id, amount=50, reason="Zgârietură")
        self.assertEqual(res.status_code, 201, res.get_json())
        refund_id = res.get_json()["refund"]["id"]
        self.assertEqual(self.order_status(order_id), "refund_requested")

        again = self._request(order_id, self.buyer_id, amount=10)
        self.assertEqual(again.status_code, 400)

        done = self.client.post("/api/admin/refunds/process", json={"refund_id": refund_id}, headers=self.auth(self.admin_id))
        self.assertEqual(done.status_code, 200, done.get_json())
        refund = done.get_json()["refund"]
        self.assertEqual(refund["status"], "completed")
        self.assertEqual(refund["amount"], 50.0)
        self.assertTrue(refund["provider_ref"].startswith("re_mock_"))
        with self.app.app_context():
            order = db.session.get(Order, order_id)
            self.assertEqual(order.status, "partially_refunded")
            self.assertEqual(order.refund_amount, 50.0)
            self.assertTrue(db.session.get(Listing, order.listing_id).is_sold)

    def test_refund_amount_cannot_exceed_remaining(self):
        order_id = self.paid_order(self.buyer_id, self.seller_id, price=100.0)
        res = self._request(order_id, self.buyer_id, amount=102.01)
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["error"], "AMOUNT_TOO_HIGH")

    def test_stranger_cannot_request_refund(self):
        order_id = self.paid_order(self.buyer_id, self.seller_id)
        res = self._request(order_id, self.make_user())
        self.assertEqual(res.status_code, 403)

    def test_rejected_request_restores_previous_status(self):
        order_id = self.shipped_order(self.buyer_id, self.seller_id)
        refund_id = self._request(order_id, self.buyer_id).get_json()["refund"]["id"]
        res = self.client.post(f"/api/admin/refunds/{refund_id}/reject", json={"note": "Fără dovezi"}, headers=self.auth(self.admin_id))
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["refund"]["status"], "rejected")
        self.assertEqual(self.order_status(order_id), "shipped")

    def test_full_refund_by_order_releases_listing_and_cancels_pending_payout(self):
        order_id = self.shipped_order(self.buyer_id, self.seller_id)
        self.client.post(f"/api/orders/{order_id}/confirm-delivery", headers=self.auth(self.buyer_id))
        res = self.client.post("/api/admin/refunds/process", json={"order_id": order_id, "reason": "Produs neconform"}, headers=self.auth(self.admin_id))
        self.assertEqual(res.status_code, 200, res.get_json())
        self.assertEqual(res.get_json()["refund"]["amount"], 102.0)
        with self.app.app_context():
            order = db.session.get(Order, order_id)
            self.assertEqual(order.status, "refunded")
            self.assertEqual(order.payout_status, "cancelled")
            self.assertEqual(Payout.query.filter_by(order_id=order_id).one().status, "cancelled")
            listing = db.session.get(Listing, order.listing_id)
            self.assertFalse(listing.is_sold)

        twice = self.client.post("/api/admin/refunds/process", json={"order_id": order_id}, headers=self.auth(self.admin_id))
        self.assertEqual(twice.status_code, 400)
        self.assertEqual(twice.get_json()["error"], "ALREADY_REFUNDED")

    def test_refund_processing_requires_admin(self):
        order_id = self.paid_order(self.buyer_id, self.seller_id)
        res = self.client.post("/api/admin/refunds/process", json={"order_id": order_id}, headers=self.auth(self.buyer_id))
        self.assertEqual(res.status_code, 403)
        with self.app.app_context():
            self.assertEqual(Refund.query.filter_by(order_id=order_id).count(), 0)


class ReturnsTestCase(ApiTestCase):
    def setUp(self):
        self.seller_id = self.make_user(seller=True)
        self.buyer_id = self.make_user()
        order_id = self.shipped_order(self.buyer_id, self.seller_id)
        self.client.post(f"/api/orders/{order_id}/confirm-delivery", headers=self.auth(self.buyer_id))
        self.order_id = order_id

    def test_return_lifecycle(self):
        res = self.client.post(f"/api/orders/{self.order_id}/returns", json={"reason": "Mărime greșită"}, headers=self.auth(self.buyer_id))
        self.assertEqual(res.status_code, 201, res.get_json())
        return_id = res.get_json()["return"]["id"]

        duplicate = self.client.post(f"/api/orders/{self.order_id}/returns", json={"reason": "Din nou"}, headers=self.auth(self.buyer_id))
        self.assertEqual(duplicate.status_code, 409)

        buyer_approve = self.client.patch(f"/api/returns/{return_id}", json={"status": "approved"}, headers=self.auth(self.buyer_id))
        self.assertEqual(buyer_approve.status_code, 403)

        approved = self.client.patch(f"/api/returns/{return_id}", json={"status": "approved"}, headers=self.auth(self.seller_id))
        self.assertEqual(approved.get_json()["return"]["status"], "approved")

        invalid = self.client.patch(f"/api/returns/{return_id}", json={"status": "rejected"}, headers=self.auth(self.seller_id))
        self.assertEqual(invalid.status_code, 400)
        self.assertEqual(invalid.get_json()["error"], "INVALID_RETURN_TRANSITION")

        completed = self.client.patch(f"/api/returns/{return_id}", json={"status": "completed"}, headers=self.auth(self.seller_id))
        self.assertEqual(completed.get_json()["return"]["status"], "completed")

    def test_return_needs_reason(self):
        res = self.client.post(f"/api/orders/{self.order_id}/returns", json={}, headers=self.auth(self.buyer_id))
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["error"], "MISSING_FIELDS")


class DisputesTestCase(ApiTestCase):
    def setUp(self):
        self.seller_id = self.make_user(seller=True, stripe_account=True)
        self.buyer_id = self.make_user()
        self.admin_id = self.make_user(role="admin")

    def _open(self, order_id: int, user_id: int, reason: str = "Coletul nu a ajuns"):
        return self.client.post(f"/api/orders/{order_id}/disputes", json={"reason": reason}, headers=self.auth(user_id))

    def test_dispute_resolved_for_seller_releases_payout(self):
        order_id = self.shipped_order(self.buyer_id, self.seller_id)
        res = self._open(order_id, self.buyer_id)
        self.assertEqual(res.status_code, 201, res.get_json())
        dispute_id = res.get_json()["dispute"]["id"]
        self.assertEqual(self.order_status(order_id), "dispute_opened")

        blocked = self.client.post(f"/api/orders/{order_id}/confirm-delivery", headers=self.auth(self.buyer_id))
        self.assertEqual(blocked.status_code, 400)

        resolved = self.client.post(
            f"/api/admin/disputes/{dispute_id}/resolve",
            json={"resolution": "seller", "note": "AWB livrat"},
            headers=self.auth(self.admin_id),
        )
        self.assertEqual(resolved.status_code, 200, resolved.get_json())
        self.assertEqual(resolved.get_json()["dispute"]["status"], "resolved_seller")
        self.assertEqual(self.order_status(order_id), "delivered")
        with self.app.app_context():
            payout = Payout.query.filter_by(order_id=order_id).one()
            self.assertEqual(payout.net_amount, 80.0)

    def test_dispute_resolved_for_buyer_refunds_in_full(self):
        order_id = self.paid_order(self.buyer_id, self.seller_id)
        dispute_id = self._open(order_id, self.seller_id, "Cumpărătorul nu răspunde").get_json()["dispute"]["id"]
        res = self.client.post(f"/api/admin/disputes/{dispute_id}/resolve", json={"resolution": "buyer"}, headers=self.auth(self.admin_id))
        self.assertEqual(res.status_code, 200, res.get_json())
        self.assertEqual(self.order_status(order_id), "refunded")

        again = self.client.post(f"/api/admin/disputes/{dispute_id}/resolve", json={"resolution": "buyer"}, headers=self.auth(self.admin_id))
        self.assertEqual(again.status_code, 400)
        self.assertEqual(again.get_json()["error"], "DISPUTE_RESOLVED")

    def test_dispute_not_allowed_on_pending_order(self):
        listing_id = self.make_listing(self.seller_id)
        order_id = self.checkout(self.buyer_id, listing_id)["order_id"]
        res = self._open(order_id, self.buyer_id)
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["error"], "INVALID_ORDER_STATUS")

    def test_invalid_resolution(self):
        order_id = self.paid_order(self.buyer_id, self.seller_id)
        dispute_id = self._open(order_id, self.buyer_id).get_json()["dispute"]["id"]
        res = self.client.post(f"/api/admin/disputes/{dispute_id}/resolve", json={"resolution": "split"}, headers=self.auth(self.admin_id))
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["error"], "INVALID_RESOLUTION")


if __name__ == "__main__":
    unittest.main()
