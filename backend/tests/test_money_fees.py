from __future__ import annotations

import unittest

from app.extensions import db
from app.models import PlatformFee
from app.services.fees import compute_order_fees, shipping_cost_minor, weekly_promotion_fee
from app.utils.money import money_major_to_minor, money_minor_to_major, percent_of_minor, round_money
from piata_test_support import ApiTestCase


class MoneyMinorTestCase(unittest.TestCase):
    def test_major_to_minor_rounds_half_up(self):
        self.assertEqual(money_major_to_minor(10.005), 1001)
        self.assertEqual(money_major_to_minor("19.99"), 1999)
        self.assertEqual(money_major_to_minor(None), 0)
        self.assertEqual(money_major_to_minor(-5), 0)
        self.assertEqual(money_major_to_minor("abc"), 0)

    def test_minor_to_major(self):
        self.assertEqual(money_minor_to_major(10799), 107.99)
        self.assertEqual(round_money(0.125), 0.13)

    def test_percent_of_minor(self):
        self.assertEqual(percent_of_minor(10000, 20), 2000)
        self.assertEqual(percent_of_minor(10, 5), 1)  # 0.5 -> 1
        self.assertEqual(percent_of_minor(9999, 2.5), 250)
        self.assertEqual(percent_of_minor(10000, 0), 0)


class DefaultFeesTestCase(ApiTestCase):
    def setUp(self):
        with self.app.app_context():
            PlatformFee.query.delete()
            db.session.commit()

    def test_defaults_without_fee_rows(self):
        with self.app.app_context():
            fees = compute_order_fees(100.0, "standard").as_major()
            self.assertEqual(fees["buyer_fee"], 2.0)
            self.assertEqual(fees["seller_commission"], 20.0)
            self.assertEqual(fees["total"], 102.0)
            self.assertEqual(fees["net_payout"], 80.0)
            self.assertEqual(weekly_promotion_fee(), 3.0)

    def test_shipping_methods(self):
        self.assertEqual(shipping_cost_minor("express"), 599)
        self.assertEqual(shipping_cost_minor("OVERNIGHT"), 999)
        self.assertEqual(shipping_cost_minor("pickup"), 0)
        self.assertEqual(shipping_cost_minor(None), 0)

    def test_percentage_buyer_fee_row(self):
        with self.app.app_context():
            db.session.add(PlatformFee(fee_type="buyer_service_fee", amount=5, is_percentage=True, is_active=True))
            db.session.commit()
            fees = compute_order_fees(200.0, "express")
            self.assertEqual(fees.buyer_fee_minor, 1000)
            self.assertEqual(fees.total_minor, 20000 + 1000 + 599)

    def test_commission_never_exceeds_item(self):
        with self.app.app_context():
            db.session.add(PlatformFee(fee_type="seller_commission", amount=150, is_percentage=True, is_active=True))
            db.session.commit()
            fees = compute_order_fees(10.0)
            self.assertEqual(fees.seller_commission_minor, 1000)
            self.assertEqual(fees.net_payout_minor, 0)


if __name__ == "__main__":
    unittest.main()
