from __future__ import annotations

import unittest
from datetime import datetime, timedelta

from app.extensions import db
from app.models import FraudAlert, IndexingQueueItem, Listing, Notification, PriceHistory, ProhibitedItem, Promotion
from piata_test_support import ApiTestCase


class ListingGatesTestCase(ApiTestCase):
    @classmethod
    def setUpClass(cls):
        super().setUpClass()
        with cls.app.app_context():
            db.session.add(ProhibitedItem(keyword="arma", category="weapons", severity="block"))
            db.session.add(ProhibitedItem(keyword="replica", category="counterfeit", severity="flag"))
            db.session.commit()

    def _create(self, user_id: int, **payload):
        body = {"title": "Lampă vintage", "description": "Funcționează", "price": 50}
        body.update(payload)
        return self.client.post("/api/listings", json=body, headers=self.auth(user_id))

    def test_seller_without_kyc_documents_cannot_list(self):
        user_id = self.make_user()
        res = self._create(user_id)
        self.assertEqual(res.status_code, 403)
        body = res.get_json()
        self.assertEqual(body["error"], "KYC_REQUIRED")
        self.assertFalse(body["kyc"]["canSell"])

    def test_suspended_seller_is_rejected(self):
        user_id = self.make_user(seller=True, is_suspended=True)
        res = self._create(user_id)
        self.assertEqual(res.status_code, 403)
        self.assertEqual(res.get_json()["error"], "ACCOUNT_SUSPENDED")

    def test_listing_is_created_and_queued_for_indexing(self):
        user_id = self.make_user(seller=True)
        res = self._create(user_id, category="electronice", condition="good")
        self.assertEqual(res.status_code, 201, res.get_json())
        listing = res.get_json()["listing"]
        self.assertEqual(listing["price"], 50.0)
        self.assertEqual(res.get_json()["fraud_check"]["alert_count"], 0)
        with self.app.app_context():
            self.assertEqual(PriceHistory.query.filter_by(listing_id=listing["id"]).count(), 1)
            urls = [r.url for r in IndexingQueueItem.query.all()]
            self.assertTrue(any(u.endswith(f"/listing/{listing['id']}") for u in urls))

    def test_new_seller_daily_limit(self):
        user_id = self.make_user(seller=True)
        for i in range(3):
            self.assertEqual(self._create(user_id, title=f"Carte {i}").status_code, 201)
        res = self._create(user_id, title="Carte 4")
        self.assertEqual(res.status_code, 429)
        body = res.get_json()
        self.assertEqual(body["error"], "DAILY_LISTING_LIMIT")
        self.assertEqual(body["daily_listing_limit"], 3)

    def test_new_seller_price_ceiling(self):
        user_id = self.make_user(seller=True)
        res = self._create(user_id, price=500.01)
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["error"], "PRICE_ABOVE_LEVEL_LIMIT")
        self.assertEqual(self._create(user_id, price=500).status_code, 201)

    def test_active_listing_cap(self):
        user_id = self.make_user(seller=True)
        yesterday = datetime.utcnow() - timedelta(days=2)
        for _ in range(10):
            self.make_listing(user_id, created_at=yesterday)
        res = self._create(user_id)
        self.assertEqual(res.status_code, 403)
        self.assertEqual(res.get_json()["error"], "LISTING_LIMIT_REACHED")

    def test_blocked_keyword_rejects_listing(self):
        user_id = self.make_user(seller=True)
        res = self._create(user_id, title="Arma de colecție")
        self.assertEqual(res.status_code, 422)
        body = res.get_json()
        self.assertEqual(body["error"], "PROHIBITED_CONTENT")
        self.assertEqual(body["matches"][0]["keyword"], "arma")

    def test_flagged_keyword_publishes_then_deactivates(self):
        user_id = self.make_user(seller=True)
        res = self._create(user_id, title="Ceas replica")
        self.assertEqual(res.status_code, 201)
        listing = res.get_json()["listing"]
        check = res.get_json()["fraud_check"]
        self.assertEqual(check["alerts"][0]["severity"], "warning")
        self.assertFalse(check["is_active"])
        with self.app.app_context():
            self.assertFalse(db.session.get(Listing, listing["id"]).is_active)
            alert = FraudAlert.query.filter_by(listing_id=listing["id"]).one()
            self.assertEqual(alert.alert_type, "prohibited_item")

    def test_price_change_over_threshold_raises_alert(self):
        user_id = self.make_user(seller=True)
        listing_id = self._create(user_id, price=100).get_json()["listing"]["id"]
        res = self.client.patch(f"/api/listings/{listing_id}", json={"price": 10}, headers=self.auth(user_id))
        self.assertEqual(res.status_code, 200)
        with self.app.app_context():
            types = [a.alert_type for a in FraudAlert.query.filter_by(listing_id=listing_id).all()]
        self.assertIn("price_manipulation", types)
        history = self.client.get(f"/api/listings/{listing_id}/price-history").get_json()["items"]
        self.assertEqual([h["price"] for h in history], [100.0, 10.0])

    def test_only_owner_updates_listing(self):
        owner = self.make_user(seller=True)
        other = self.make_user()
        listing_id = self.make_listing(owner)
        res = self.client.patch(f"/api/listings/{listing_id}", json={"title": "Altceva"}, headers=self.auth(other))
        self.assertEqual(res.status_code, 403)

    def test_deactivate_hides_listing_from_browse(self):
        owner = self.make_user(seller=True)
        listing_id = self.make_listing(owner, title="Dulap de stejar unic")
        res = self.client.delete(f"/api/listings/{listing_id}", headers=self.auth(owner))
        self.assertEqual(res.status_code, 200)
        found = self.client.get("/api/listings?q=stejar%20unic").get_json()["items"]
        self.assertNotIn(listing_id, [i["id"] for i in found])

    def test_browse_ranks_promoted_listings_first(self):
        owner = self.make_user(seller=True)
        plain = self.make_listing(owner, title="Fotoliu promo-test", price=10)
        boosted = self.make_listing(owner, title="Canapea promo-test", price=20)
        now = datetime.utcnow()
        with self.app.app_context():
            db.session.add(Promotion(
                listing_id=boosted,
                user_id=owner,
                promotion_type="paid",
                amount_paid=3.0,
                starts_at=now - timedelta(minutes=1),
                ends_at=now + timedelta(days=7),
            ))
            db.session.commit()
        items = self.client.get("/api/listings?q=promo-test&sort=price_asc").get_json()["items"]
        self.assertEqual([i["id"] for i in items], [boosted, plain])
        self.assertTrue(items[0]["is_promoted"])
        self.assertFalse(items[1]["is_promoted"])

    def test_listing_detail_counts_views_and_fee_preview(self):
        owner = self.make_user(seller=True)
        listing_id = self.make_listing(owner, price=100)
        self.client.get(f"/api/listings/{listing_id}")
        detail = self.client.get(f"/api/listings/{listing_id}").get_json()["listing"]
        self.assertEqual(detail["views_count"], 2)
        fees = self.client.get(f"/api/listings/{listing_id}/fees?shipping_method=overnight").get_json()["fees"]
        self.assertEqual(fees["total"], 111.99)
        self.assertEqual(fees["net_payout"], 80.0)

    def test_missing_listing_is_404(self):
        res = self.client.get("/api/listings/987654")
        self.assertEqual(res.status_code, 404)
        self.assertEqual(res.get_json()["error"], "LISTING_NOT_FOUND")


class AuctionBidsTestCase(ApiTestCase):
    def setUp(self):
        self.seller_id = self.make_user(seller=True)
        self.bidder_a = self.make_user()
        self.bidder_b = self.make_user()
        self.listing_id = self.make_listing(
            self.seller_id,
            listing_type="auction",
            starting_bid=20.0,
            price=20.0,
            auction_end_date=datetime.utcnow() + timedelta(days=2),
        )

    def _bid(self, user_id: int, amount):
        return self.client.post(f"/api/listings/{self.listing_id}/bids", json={"amount": amount}, headers=self.auth(user_id))

    def test_bids_must_beat_starting_and_highest(self):
        self.assertEqual(self._bid(self.bidder_a, 19).get_json()["error"], "BID_TOO_LOW")
        self.assertEqual(self._bid(self.bidder_a, 20).status_code, 201)
        low = self._bid(self.bidder_b, 20)
        self.assertEqual(low.status_code, 400)
        self.assertEqual(low.get_json()["highest_bid"], 20.0)
        self.assertEqual(self._bid(self.bidder_b, 25).status_code, 201)
        listing = self.client.get(f"/api/listings/{self.listing_id}/bids").get_json()
        self.assertEqual(listing["highest_bid"], 25.0)

    def test_seller_cannot_bid_on_own_auction(self):
        res = self._bid(self.seller_id, 50)
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["error"], "OWN_LISTING")

    def test_seller_declines_bid(self):
        bid_id = self._bid(self.bidder_a, 30).get_json()["bid"]["id"]
        res = self.client.delete(f"/api/bids/{bid_id}", headers=self.auth(self.seller_id))
        self.assertEqual(res.status_code, 200)
        self.assertEqual(self.client.get(f"/api/listings/{self.listing_id}/bids").get_json()["items"], [])

    def test_decline_reason_reaches_bidder(self):
        bid_id = self._bid(self.bidder_a, 30).get_json()["bid"]["id"]
        res = self.client.delete(f"/api/bids/{bid_id}", json={"reason": "Prea mic"}, headers=self.auth(self.seller_id))
        self.assertEqual(res.status_code, 200)
        with self.app.app_context():
            note = Notification.query.filter_by(user_id=self.bidder_a, type="bid_declined").first()
            self.assertIsNotNone(note)
            self.assertIn("Motiv: Prea mic", note.message)


if __name__ == "__main__":
    unittest.main()
