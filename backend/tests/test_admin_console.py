from __future__ import annotations

import unittest

from app.extensions import db
from app.models import Notification, PlatformFee
from app.services.fees import compute_order_fees, seed_default_fees
from piata_test_support import ApiTestCase


class AdminUsersTestCase(ApiTestCase):
    def setUp(self):
        self.admin_id = self.make_user(role="admin")

    def test_non_admin_is_forbidden(self):
        user_id = self.make_user()
        res = self.client.get("/api/admin/integrations", headers=self.auth(user_id))
        self.assertEqual(res.status_code, 403)
        self.assertEqual(res.get_json()["error"], "FORBIDDEN")

    def test_integration_settings_roundtrip_and_validation(self):
        res = self.client.get("/api/admin/integrations", headers=self.auth(self.admin_id))
        self.assertEqual(res.get_json()["settings"]["integrations_mode"], "sandbox")

        bad = self.client.put("/api/admin/integrations", json={"integrations_mode": "chaos"}, headers=self.auth(self.admin_id))
        self.assertEqual(bad.status_code, 400)
        self.assertEqual(bad.get_json()["error"], "INVALID_SETTINGS")

        ok = self.client.put("/api/admin/integrations", json={"sms_enabled": False}, headers=self.auth(self.admin_id))
        self.assertEqual(ok.status_code, 200)
        self.assertFalse(ok.get_json()["settings"]["sms_enabled"])
        self.client.put("/api/admin/integrations", json={"sms_enabled": True}, headers=self.auth(self.admin_id))

        health = self.client.get("/api/admin/integrations/health", headers=self.auth(self.admin_id)).get_json()
        self.assertEqual(health["payments"]["provider"], "mock")
        self.assertEqual(health["messaging"]["status"], "configured")

    def test_kyc_approval_unlocks_withdrawals(self):
        user_id = self.make_user(seller=True)
        res = self.client.post(f"/api/admin/users/{user_id}/kyc", json={"decision": "approve"}, headers=self.auth(self.admin_id))
        self.assertEqual(res.status_code, 200)
        me = self.client.get("/api/auth/me", headers=self.auth(user_id)).get_json()["user"]
        self.assertTrue(me["kyc"]["isVerified"])
        self.assertTrue(me["kyc"]["canWithdraw"])
        with self.app.app_context():
            self.assertEqual(Notification.query.filter_by(user_id=user_id, type="kyc").count(), 1)

        invalid = self.client.post(f"/api/admin/users/{user_id}/kyc", json={"decision": "maybe"}, headers=self.auth(self.admin_id))
        self.assertEqual(invalid.status_code, 400)

    def test_suspend_and_unsuspend(self):
        user_id = self.make_user()
        res = self.client.post(f"/api/admin/users/{user_id}/suspend", json={"suspended": True}, headers=self.auth(self.admin_id))
        self.assertEqual(res.status_code, 200)
        blocked = self.client.get("/api/auth/me", headers=self.auth(user_id))
        self.assertEqual(blocked.status_code, 403)
        self.client.post(f"/api/admin/users/{user_id}/suspend", json={"suspended": False}, headers=self.auth(self.admin_id))
        self.assertEqual(self.client.get("/api/auth/me", headers=self.auth(user_id)).status_code, 200)

        self_suspend = self.client.post(f"/api/admin/users/{self.admin_id}/suspend", json={}, headers=self.auth(self.admin_id))
        self.assertEqual(self_suspend.get_json()["error"], "SELF_SUSPEND")

    def test_seller_tier_override_lifts_listing_cap(self):
        user_id = self.make_user(seller=True)
        bad = self.client.put(f"/api/admin/users/{user_id}/seller-limit", json={"tier": "platinum"}, headers=self.auth(self.admin_id))
        self.assertEqual(bad.get_json()["error"], "INVALID_TIER")

        res = self.client.put(f"/api/admin/users/{user_id}/seller-limit", json={"tier": "unlimited"}, headers=self.auth(self.admin_id))
        self.assertEqual(res.status_code, 200)
        self.assertIsNone(res.get_json()["limit"]["max_listings"])
        limits = self.client.get("/api/seller/limits", headers=self.auth(user_id)).get_json()
        self.assertTrue(limits["listing_limit"]["can_create_more"])
        self.assertEqual(limits["custom_limit"]["tier"], "unlimited")

    def test_prohibited_item_management(self):
        res = self.client.post("/api/admin/prohibited-items", json={"keyword": "Tutun", "severity": "flag"}, headers=self.auth(self.admin_id))
        self.assertEqual(res.status_code, 201)
        item_id = res.get_json()["item"]["id"]
        self.assertEqual(res.get_json()["item"]["keyword"], "tutun")

        bad = self.client.post("/api/admin/prohibited-items", json={"keyword": "x", "severity": "nuke"}, headers=self.auth(self.admin_id))
        self.assertEqual(bad.get_json()["error"], "INVALID_SEVERITY")

        removed = self.client.delete(f"/api/admin/prohibited-items/{item_id}", headers=self.auth(self.admin_id))
        self.assertFalse(removed.get_json()["item"]["is_active"])

    def test_jobs_accept_service_key_and_reject_unknown(self):
        res = self.client.post("/api/admin/jobs/expire-promotions", headers=self.service_headers())
        self.assertEqual(res.status_code, 200)
        self.assertIn("expired", res.get_json()["result"])
        missing = self.client.post("/api/admin/jobs/rebuild-universe", headers=self.service_headers())
        self.assertEqual(missing.status_code, 404)
        anonymous = self.client.post("/api/admin/jobs/payouts")
        self.assertEqual(anonymous.status_code, 401)


class AdminFeesTestCase(ApiTestCase):
    def setUp(self):
        self.admin_id = self.make_user(role="admin")
        with self.app.app_context():
            PlatformFee.query.delete()
            db.session.commit()

    def test_fee_rows_drive_order_pricing(self):
        created = self.client.post(
            "/api/admin/fees",
            json={"fee_type": "seller_commission", "amount": 10, "is_percentage": True},
            headers=self.auth(self.admin_id),
        )
        self.assertEqual(created.status_code, 201)
        fee_id = created.get_json()["fee"]["id"]
        with self.app.app_context():
            self.assertEqual(compute_order_fees(100.0).as_major()["net_payout"], 90.0)

        self.client.patch(f"/api/admin/fees/{fee_id}", json={"amount": 15}, headers=self.auth(self.admin_id))
        with self.app.app_context():
            self.assertEqual(compute_order_fees(100.0).as_major()["seller_commission"], 15.0)

        self.client.delete(f"/api/admin/fees/{fee_id}", headers=self.auth(self.admin_id))
        with self.app.app_context():
            self.assertEqual(compute_order_fees(100.0).as_major()["seller_commission"], 20.0)

    def test_fee_validation(self):
        res = self.client.post("/api/admin/fees", json={"fee_type": "buyer_fee", "amount": -1}, headers=self.auth(self.admin_id))
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["error"], "INVALID_FEE")
        res = self.client.post("/api/admin/fees", json={"amount": 1}, headers=self.auth(self.admin_id))
        self.assertEqual(res.get_json()["error"], "MISSING_FIELDS")

    def test_seed_default_fees_is_idempotent(self):
        with self.app.app_context():
            self.assertEqual(seed_default_fees(), 3)
            self.assertEqual(seed_default_fees(), 0)
        items = self.client.get("/api/admin/fees", headers=self.auth(self.admin_id)).get_json()["items"]
        self.assertEqual(sorted(f["fee_type"] for f in items), ["buyer_fee", "seller_commission", "weekly_promotion"])


if __name__ == "__main__":
    unittest.main()
