from __future__ import annotations

import unittest
from unittest import mock

from sqlalchemy.exc import OperationalError

from catering.extensions import db
from catering.models import PointLedgerEntry
from catering.services import points_ledger
from tests.support import AppTestCase


class PaymentCompleteTestCase(AppTestCase):
    def setUp(self):
        super().setUp()
        self.make_user("buyer-1", point=5000)
        self.clients.payments.register("imp_1", 121000)

    def _complete(self, **payload):
        body = {"orderId": "order-1"}
        body.update(payload)
        return self.client.post("/api/payments/complete", json=body)

    def test_regular_payment_is_merged(self):
        self.make_order()
        res = self._complete(imp_uid="imp_1")

        self.assertEqual(res.status_code, 200)
        body = res.get_json()
        self.assertEqual(body["paymentId"], "imp_1")
        self.assertEqual(body["orderNumber"], "AB12CD34")
        self.assertFalse(body["alreadyProcessed"])
        order = self.reload()
        self.assertEqual(order.payment_status, "paid")
        self.assertEqual(order.payment_id, ["imp_1"])
        self.assertEqual(len(order.payment_info), 1)
        self.assertEqual(order.payment_info[0]["status"], "paid")
        self.assertEqual(order.payment_info[0]["amount"], 121000)
        self.assertEqual(order.items[0]["paymentId"], "imp_1")
        self.assertIsNotNone(order.verified_at)

    def test_duplicate_delivery_debits_points_once(self):
        self.make_order(used_point=2000)
        first = self._complete(imp_uid="imp_1")
        second = self._complete(imp_uid="imp_1")

        self.assertEqual(first.get_json()["pointsDebited"], 2000)
        self.assertTrue(second.get_json()["alreadyProcessed"])
        self.assertEqual(second.get_json()["pointsDebited"], 0)
        self.assertEqual(points_ledger.balance("buyer-1"), 3000)
        self.assertEqual(PointLedgerEntry.query.count(), 1)
        self.assertEqual(self.reload().payment_id, ["imp_1"])

    def test_point_only_checkout(self):
        self.make_order()
        res = self._complete(usedPoint=4000)

        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["paymentId"], "POINT_ONLY")
        order = self.reload()
        self.assertEqual(order.payment_info[0]["method"], "point")
        self.assertEqual(order.payment_info[0]["amount"], 0)
        self.assertEqual(order.used_point, 4000)
        self.assertEqual(points_ledger.balance("buyer-1"), 1000)

    def test_point_only_replay_debits_once(self):
        self.make_order()
        first = self._complete(usedPoint=4000)
        second = self._complete(usedPoint=4000)

        self.assertFalse(first.get_json()["alreadyProcessed"])
        self.assertTrue(second.get_json()["alreadyProcessed"])
        self.assertEqual(second.get_json()["pointsDebited"], 0)
        order = self.reload()
        self.assertEqual(order.payment_id, ["POINT_ONLY"])
        self.assertEqual(len(order.payment_info), 1)
        self.assertEqual(PointLedgerEntry.query.count(), 1)
        self.assertEqual(points_ledger.balance("buyer-1"), 1000)

    def test_ledger_append_failure_keeps_merge_and_flags_repair(self):
        self.make_order(used_point=2000)
        real_commit = db.session.commit

        def commit_failing_on_ledger_entry():
            if any(isinstance(obj, PointLedgerEntry) for obj in db.session.new):
                raise OperationalError("INSERT INTO point_ledger_entries", {}, Exception("disk I/O error"))
            return real_commit()

        with mock.patch.object(db.session, "commit", side_effect=commit_failing_on_ledger_entry), \
                self.assertLogs("catering.services", "ERROR") as logs:
            res = self._complete(imp_uid="imp_1")

        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["pointsDebited"], 0)
        order = self.reload()
        self.assertEqual(order.payment_status, "paid")
        self.assertEqual(order.payment_id, ["imp_1"])
        self.assertEqual(points_ledger.balance("buyer-1"), 3000)
        self.assertEqual(PointLedgerEntry.query.count(), 0)
        output = "\n".join(logs.output)
        self.assertIn("points_ledger_append_failed uid=buyer-1 order_id=order-1 payment_id=imp_1 amount=2000 repair_required=true", output)
        self.assertIn("points_debit_failed order_id=order-1 payment_id=imp_1", output)

    def test_supplemental_payment_appends_items_and_totals(self):
        self.make_order(
            payment_status="paid",
            order_status="accepted",
            payment_id=["imp_1"],
            payment_info=[{"imp_uid": "imp_1", "status": "paid", "amount": 123000}],
            items=[{"productName": "도시락 세트", "quantity": 10, "unitPrice": 12000, "paymentId": "imp_1", "isAddItem": False}],
        )
        self.clients.payments.register("imp_2", 6000)
        res = self._complete(
            imp_uid="imp_2",
            isAdditionalOrder=True,
            additionalItems=[{"productName": "음료", "quantity": 3, "unitPrice": 2000}],
            additionalProductPrice=6000,
            additionalQuantity=3,
        )

        self.assertEqual(res.status_code, 200)
        order = self.reload()
        self.assertEqual(order.payment_id, ["imp_1", "imp_2"])
        self.assertEqual(len(order.payment_info), 2)
        self.assertEqual(len(order.items), 2)
        self.assertTrue(order.items[1]["isAddItem"])
        self.assertEqual(order.items[1]["paymentId"], "imp_2")
        self.assertEqual(order.total_product_price, 126000)
        self.assertEqual(order.total_quantity, 13)
        self.assertEqual(order.order_status, "accepted")
        templates = sorted(m["template_code"] for m in self.clients.messaging.sent)
        self.assertEqual(templates, ["UD_3133", "UD_3467"])

    def test_order_placed_alimtalk_to_partner_and_buyer(self):
        self.make_order()
        self._complete(imp_uid="imp_1")

        sent = {m["template_code"]: m for m in self.clients.messaging.sent}
        self.assertEqual(set(sent), {"UD_0958", "UD_3466"})
        self.assertEqual(sent["UD_0958"]["phone"], "01099990000")
        self.assertEqual(sent["UD_3466"]["phone"], "01012345678")
        self.assertEqual(sent["UD_3466"]["variables"]["totalProductPrice"], "120,000")

    def test_unverified_payment_rejected(self):
        self.make_order()
        res = self._complete(imp_uid="fail_1")

        self.assertEqual(res.status_code, 400)
        order = self.reload()
        self.assertEqual(order.payment_status, "unpaid")
        self.assertEqual(order.payment_id, [])

    def test_unknown_order_is_404(self):
        res = self._complete(orderId="missing", imp_uid="imp_1")
        self.assertEqual(res.status_code, 404)

    def test_missing_payment_reference_is_400(self):
        self.make_order()
        res = self._complete()
        self.assertEqual(res.status_code, 400)


class PaymentCancelTestCase(AppTestCase):
    def test_cancel_goes_to_gateway(self):
        self.clients.payments.register("imp_1", 5000)
        res = self.client.post("/api/payments/cancel", json={"imp_uid": "imp_1", "reason": "고객 요청"})

        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["cancellation"]["cancel_amount"], 5000)
        self.assertIn("imp_1", self.clients.payments.cancelled)

    def test_cancel_requires_payment_id(self):
        res = self.client.post("/api/payments/cancel", json={})
        self.assertEqual(res.status_code, 400)


if __name__ == "__main__":
    unittest.main()
