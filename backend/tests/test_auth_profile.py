from __future__ import annotations

import time
import unittest

from piata_test_support import ApiTestCase


class AuthProfileTestCase(ApiTestCase):
    def _register(self, **payload):
        body = {"email": f"nou-{time.time_ns()}@piata.test", "password": "Parola-Sigura-9", "display_name": "Ioana"}
        body.update(payload)
        return self.client.post("/api/auth/register", json=body)

    def test_register_then_login(self):
        email = f"login-{time.time_ns()}@piata.test"
        res = self._register(email=email)
        self.assertEqual(res.status_code, 201)
        self.assertTrue(res.get_json()["token"])

        bad = self.client.post("/api/auth/login", json={"email": email, "password": "gresit-123"})
        self.assertEqual(bad.status_code, 401)
        self.assertEqual(bad.get_json()["error"], "INVALID_CREDENTIALS")

        ok = self.client.post("/api/auth/login", json={"email": email.upper(), "password": "Parola-Sigura-9"})
        self.assertEqual(ok.status_code, 200)
        token = ok.get_json()["token"]
        me = self.client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        self.assertEqual(me.get_json()["user"]["email"], email)

    def test_register_validation(self):
        self.assertEqual(self._register(email="fara-arond").get_json()["error"], "INVALID_EMAIL")
        self.assertEqual(self._register(password="scurt").get_json()["error"], "WEAK_PASSWORD")
        self.assertEqual(self._register(password="").get_json()["error"], "MISSING_FIELDS")

    def test_duplicate_email_conflicts(self):
        email = f"dup-{time.time_ns()}@piata.test"
        self.assertEqual(self._register(email=email).status_code, 201)
        res = self._register(email=email)
        self.assertEqual(res.status_code, 409)
        self.assertEqual(res.get_json()["error"], "EMAIL_IN_USE")

    def test_suspended_user_is_blocked(self):
        user_id = self.make_user(is_suspended=True)
        me = self.client.get("/api/auth/me", headers=self.auth(user_id))
        self.assertEqual(me.status_code, 403)

    def test_invalid_token_is_unauthorized(self):
        res = self.client.get("/api/auth/me", headers={"Authorization": "Bearer not.a.token"})
        self.assertEqual(res.status_code, 401)

    def test_profile_update_and_kyc_submission_enable_selling(self):
        user_id = self.make_user()
        me = self.client.get("/api/auth/me", headers=self.auth(user_id)).get_json()["user"]
        self.assertFalse(me["kyc"]["canSell"])
        self.assertEqual(me["seller_level"]["level"], "new")

        res = self.client.patch(
            "/api/auth/me",
            json={"address_line1": "Bd. Unirii 1", "city": "Cluj-Napoca", "postal_code": "400000", "account_number": "12345678", "sort_code": "112233"},
            headers=self.auth(user_id),
        )
        self.assertEqual(res.status_code, 200)
        kyc = res.get_json()["user"]["kyc"]
        self.assertTrue(kyc["hasAddress"])
        self.assertTrue(kyc["hasBankDetails"])
        self.assertIn("documente KYC", kyc["missingFields"])

        submitted = self.client.post("/api/auth/kyc", headers=self.auth(user_id)).get_json()["kyc"]
        self.assertTrue(submitted["canSell"])
        self.assertEqual(submitted["kycStatus"], "pending")
        self.assertFalse(submitted["canWithdraw"])

    def test_display_name_cannot_be_blank(self):
        user_id = self.make_user()
        res = self.client.patch("/api/auth/me", json={"display_name": "  "}, headers=self.auth(user_id))
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["error"], "INVALID_DISPLAY_NAME")


if __name__ == "__main__":
    unittest.main()
