from __future__ import annotations

import unittest
from datetime import datetime, timedelta
from unittest.mock import patch

from app.extensions import db
from app.models import FraudAlert, Payout, User
from app.services.fraud import SECURITY_CHECK_FAILED
from app.services.payouts import available_balance, process_pending_payouts
from piata_test_support import ApiTestCase


class PayoutsTestCase(ApiTestCase):
    def setUp(self):
        self.buyer_id = self.make_user()
        self.admin_id = self.make_user(role="admin")

    def _delivered(self, seller_id: int, price: float = 100.0) -> int:
        order_id = self.shipped_order(self.buyer_id, seller_id, price=price)
        res = self.client.post(f"/api/orders/{order_id}/confirm-delivery", headers=self.auth(self.buyer_id))
        self.assertEqual(res.status_code, 200, res.get_json())
        return order_id

    def test_balance_counts_completed_sales_minus_withdrawals(self):
        seller_id = self.make_user(verified=True, stripe_account=True)
        self._delivered(seller_id, price=100.0)
        res = self.client.get("/api/payouts/balance", headers=self.auth(seller_id))
        self.assertEqual(res.get_json()["balance"], 80.0)

        withdraw = self.client.post("/api/payouts/withdraw", json={"amount": 30}, headers=self.auth(seller_id))
        self.assertEqual(withdraw.status_code, 201, withdraw.get_json())
        self.assertEqual(withdraw.get_json()["balance"], 50.0)
        self.assertEqual(withdraw.get_json()["payout"]["kind"], "withdrawal")

        items = self.client.get("/api/payouts", headers=self.auth(seller_id)).get_json()["items"]
        self.assertEqual(sorted(p["kind"] for p in items), ["sale", "withdrawal"])

    def test_withdrawal_over_balance_is_rejected(self):
        seller_id = self.make_user(verified=True, stripe_account=True)
        self._delivered(seller_id)
        res = self.client.post("/api/payouts/withdraw", json={"amount": 80.01}, headers=self.auth(seller_id))
        self.assertEqual(res.status_code, 400)
        body = res.get_json()
        self.assertEqual(body["error"], "INSUFFICIENT_BALANCE")
        self.assertEqual(body["available"], 80.0)

    def test_withdrawal_requires_verified_kyc(self):
        seller_id = self.make_user(seller=True, stripe_account=True)
        self._delivered(seller_id)
        res = self.client.post("/api/payouts/withdraw", json={"amount": 10}, headers=self.auth(seller_id))
        self.assertEqual(res.status_code, 403)
        body = res.get_json()
        self.assertEqual(body["error"], "KYC_REQUIRED")
        self.assertFalse(body["kyc"]["canWithdraw"])

    def test_withdrawal_rejects_non_positive_amount(self):
        seller_id = self.make_user(verified=True)
        res = self.client.post("/api/payouts/withdraw", json={"amount": 0}, headers=self.auth(seller_id))
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["error"], "INVALID_AMOUNT")

    def test_withdrawal_fails_closed_when_fraud_check_breaks(self):
        seller_id = self.make_user(verified=True, stripe_account=True)
        self._delivered(seller_id)
        with patch("app.services.fraud.check_withdrawal", side_effect=RuntimeError("db timeout")):
            res = self.client.post("/api/payouts/withdraw", json={"amount": 10}, headers=self.auth(seller_id))
        self.assertEqual(res.status_code, 403)
        body = res.get_json()
        self.assertEqual(body["error"], "WITHDRAWAL_BLOCKED")
        self.assertEqual(body["message"], SECURITY_CHECK_FAILED)
        with self.app.app_context():
            self.assertEqual(Payout.query.filter_by(seller_id=seller_id, kind="withdrawal").count(), 0)

    def test_too_many_payouts_in_a_day_blocks_withdrawals(self):
        seller_id = self.make_user(verified=True)
        with self.app.app_context():
            for _ in range(6):
                db.session.add(Payout(seller_id=seller_id, kind="sale", gross_amount=10, platform_fee=2, net_amount=8, status="completed"))
            db.session.commit()
        res = self.client.post("/api/payouts/withdraw", json={"amount": 5}, headers=self.auth(seller_id))
        self.assertEqual(res.status_code, 403)
        self.assertEqual(res.get_json()["error"], "WITHDRAWAL_BLOCKED")
        with self.app.app_context():
            self.assertTrue(db.session.get(User, seller_id).withdrawal_blocked)
            self.assertEqual(FraudAlert.query.filter_by(user_id=seller_id, alert_type="suspicious_withdrawal").count(), 1)

    def test_admin_completes_withdrawal(self):
        seller_id = self.make_user(verified=True, stripe_account=True)
        self._delivered(seller_id)
        payout_id = self.client.post("/api/payouts/withdraw", json={"amount": 20}, headers=self.auth(seller_id)).get_json()["payout"]["id"]

        listed = self.client.get("/api/admin/payouts?kind=withdrawal&status=pending", headers=self.auth(self.admin_id)).get_json()["items"]
        self.assertIn(payout_id, [p["id"] for p in listed])

        res = self.client.post(f"/api/admin/payouts/{payout_id}/complete", json={"reference": "OP-2211"}, headers=self.auth(self.admin_id))
        self.assertEqual(res.status_code, 200)
        payout = res.get_json()["payout"]
        self.assertEqual(payout["status"], "completed")
        self.assertEqual(payout["transfer_id"], "OP-2211")

        again = self.client.post(f"/api/admin/payouts/{payout_id}/complete", json={}, headers=self.auth(self.admin_id))
        self.assertEqual(again.status_code, 400)

    def test_pending_payout_is_transferred_once_account_is_connected(self):
        seller_id = self.make_user(seller=True)
        order_id = self._delivered(seller_id)
        with self.app.app_context():
            db.session.get(User, seller_id).stripe_account_id = "acct_late_connect"
            db.session.commit()
            summary = process_pending_payouts()
            self.assertGreaterEqual(summary["completed"], 1)
            payout = Payout.query.filter_by(order_id=order_id).one()
            self.assertEqual(payout.status, "completed")
            self.assertEqual(available_balance(seller_id), 80.0)

    def test_failed_transfer_stays_pending_and_records_reason(self):
        seller_id = self.make_user(seller=True)
        with self.app.app_context():
            db.session.get(User, seller_id).stripe_account_id = "acct_[fail]"
            db.session.commit()
        order_id = self._delivered(seller_id)
        with self.app.app_context():
            payout = Payout.query.filter_by(order_id=order_id).one()
            self.assertEqual(payout.status, "pending")
            self.assertEqual(payout.attempts, 1)
            self.assertTrue(payout.failure_reason.startswith("MOCK_PROVIDER_DOWN"))

    def test_reversed_transfer_marks_payout_failed_and_admin_retries(self):
        seller_id = self.make_user(seller=True, stripe_account=True)
        order_id = self._delivered(seller_id)
        with self.app.app_context():
            payout = Payout.query.filter_by(order_id=order_id).one()
            payout.transfer_id = "tr_reversed_1"
            db.session.commit()
            payout_id = int(payout.id)

        checked = self.client.post(f"/api/admin/payouts/{payout_id}/check", headers=self.auth(self.admin_id))
        self.assertEqual(checked.status_code, 200)
        self.assertEqual(checked.get_json()["payout"]["status"], "failed")

        retried = self.client.post(f"/api/admin/payouts/{payout_id}/retry", headers=self.auth(self.admin_id))
        self.assertEqual(retried.status_code, 200)
        self.assertEqual(retried.get_json()["payout"]["status"], "completed")
        self.assertNotEqual(retried.get_json()["payout"]["transfer_id"], "tr_reversed_1")

    def test_retry_rejects_non_failed_payout(self):
        seller_id = self.make_user(seller=True, stripe_account=True)
        order_id = self._delivered(seller_id)
        with self.app.app_context():
            payout_id = int(Payout.query.filter_by(order_id=order_id).one().id)
        res = self.client.post(f"/api/admin/payouts/{payout_id}/retry", headers=self.auth(self.admin_id))
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["error"], "INVALID_PAYOUT_STATUS")

    def test_new_account_with_high_balance_gets_warning_only(self):
        seller_id = self.make_user(verified=True, stripe_account=True, created_at=datetime.utcnow() - timedelta(days=1))
        with self.app.app_context():
            db.session.add(Payout(seller_id=seller_id, kind="sale", gross_amount=750, platform_fee=150, net_amount=600, status="completed"))
            db.session.commit()
        res = self.client.post("/api/payouts/withdraw", json={"amount": 100}, headers=self.auth(seller_id))
        self.assertEqual(res.status_code, 201, res.get_json())
        with self.app.app_context():
            alert = FraudAlert.query.filter_by(user_id=seller_id, alert_type="new_account_high_balance").one()
            self.assertEqual(alert.severity, "warning")


if __name__ == "__main__":
    unittest.main()
