from __future__ import annotations

import unittest
from unittest import mock

from catering.errors import ExternalServiceTimeout
from catering.extensions import db
from catering.models import User
from tests.support import AppTestCase


class UpdateStatusTestCase(AppTestCase):
    def setUp(self):
        super().setUp()
        self.make_user("partner-1", user_type="partner")
        self.make_user("buyer-1", fcm_token="tok-buyer")

    def _update(self, status, user_id="partner-1", order_id="order-1", **extra):
        body = {"orderId": order_id, "status": status}
        body.update(extra)
        return self.client.post("/api/orders/update-status", json=body, headers=self.auth_headers(user_id))

    def test_shipping_schedules_completion_callbacks(self):
        self.make_order(order_status="accepted", payment_status="paid")
        res = self._update("shipping", trackingInfo={"carrier": "CJ", "number": "1234"})

        self.assertEqual(res.status_code, 200)
        body = res.get_json()
        self.assertEqual(body["orderStatus"], "shipping")
        self.assertEqual(body["notificationTaskId"], "local-notification-order-1")
        self.assertEqual(body["autoCompleteTaskId"], "local-autocomplete-order-1")
        order = self.reload()
        self.assertEqual(order.order_status, "shipping")
        self.assertEqual(order.tracking_info, {"carrier": "CJ", "number": "1234"})
        self.assertIsNotNone(order.shipping_started_at)
        self.assertEqual(order.auto_complete_task_id, "local-autocomplete-order-1")

    def test_scheduling_failure_does_not_block_shipping(self):
        self.make_order(order_status="preparing", payment_status="paid")
        with mock.patch(
            "catering.services.order_completion.schedule_completion_tasks",
            side_effect=ExternalServiceTimeout("task_queue", "deadline exceeded"),
        ):
            res = self._update("shipping")

        self.assertEqual(res.status_code, 200)
        order = self.reload()
        self.assertEqual(order.order_status, "shipping")
        self.assertIsNone(order.auto_complete_task_id)

    def test_requires_authentication(self):
        self.make_order(order_status="accepted", payment_status="paid")
        res = self.client.post("/api/orders/update-status", json={"orderId": "order-1", "status": "shipping"})
        self.assertEqual(res.status_code, 401)

    def test_other_partner_is_forbidden(self):
        self.make_user("partner-2", user_type="partner")
        self.make_order(order_status="accepted", payment_status="paid")
        res = self._update("shipping", user_id="partner-2")
        self.assertEqual(res.status_code, 403)
        self.assertEqual(self.reload().order_status, "accepted")

    def test_admin_may_update_any_order(self):
        self.make_user("admin-1", user_type="admin")
        self.make_order(order_status="pending", payment_status="paid")
        res = self._update("accepted", user_id="admin-1")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(self.reload().order_status, "accepted")

    def test_illegal_transition_is_conflict(self):
        self.make_order(order_status="pending", payment_status="paid")
        res = self._update("completed")
        self.assertEqual(res.status_code, 409)
        self.assertEqual(res.get_json()["from"], "pending")
        self.assertEqual(self.reload().order_status, "pending")

    def test_unknown_order_is_404(self):
        res = self._update("shipping", order_id="missing")
        self.assertEqual(res.status_code, 404)

    def test_delivered_label_completes_order(self):
        self.make_order(order_status="shipping", payment_status="paid")
        res = self._update("delivered")
        self.assertEqual(res.status_code, 200)
        order = self.reload()
        self.assertEqual(order.order_status, "completed")
        self.assertIsNotNone(order.confirmed_at)
        self.assertEqual(order.settlement_status, "pending")
        self.assertEqual(order.confirmation_type, "manual")

    def test_rejection_notifies_buyer(self):
        self.make_order(order_status="pending", payment_status="paid")
        res = self._update("rejected")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(self.clients.push.sent[0]["data"]["type"], "ORDER_CANCELLED")
        self.assertEqual(self.clients.messaging.sent[0]["template_code"], "ORDER_CANCELLED")


class ConfirmAndCancelTestCase(AppTestCase):
    def setUp(self):
        super().setUp()
        self.make_user("buyer-1")
        self.make_user("stranger-1")

    def _post(self, path, user_id="buyer-1", order_id="order-1"):
        return self.client.post(path, json={"orderId": order_id}, headers=self.auth_headers(user_id))

    def test_buyer_confirms_shipping_order(self):
        self.make_order(
            order_status="shipping",
            payment_status="paid",
            notification_task_id="local-notification-order-1",
            auto_complete_task_id="local-autocomplete-order-1",
        )
        res = self._post("/api/orders/confirm")

        self.assertEqual(res.status_code, 200)
        order = self.reload()
        self.assertEqual(order.order_status, "completed")
        self.assertEqual(order.confirmation_type, "manual")

    def test_auto_complete_after_manual_confirm_is_noop(self):
        self.make_order(order_status="shipping", payment_status="paid")
        self._post("/api/orders/confirm")
        res = self.client.post("/api/orders/auto-complete", json={"orderId": "order-1"})
        self.assertTrue(res.get_json()["skipped"])
        self.assertEqual(self.reload().confirmation_type, "manual")

    def test_stranger_cannot_confirm(self):
        self.make_order(order_status="shipping", payment_status="paid")
        res = self._post("/api/orders/confirm", user_id="stranger-1")
        self.assertEqual(res.status_code, 403)
        self.assertEqual(self.reload().order_status, "shipping")

    def test_confirm_before_shipping_is_conflict(self):
        self.make_order(order_status="preparing", payment_status="paid")
        res = self._post("/api/orders/confirm")
        self.assertEqual(res.status_code, 409)

    def test_cancel_before_acceptance(self):
        self.make_order(order_status="pending", payment_status="paid")
        res = self._post("/api/orders/cancel")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(self.reload().order_status, "cancelled_before_accept")

    def test_cancel_after_acceptance(self):
        self.make_order(order_status="accepted", payment_status="paid")
        res = self._post("/api/orders/cancel")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(self.reload().order_status, "cancelled")

    def test_cancel_completed_order_is_noop(self):
        self.make_order(order_status="completed", payment_status="paid")
        res = self._post("/api/orders/cancel")
        self.assertEqual(res.status_code, 200)
        self.assertFalse(res.get_json()["changed"])
        self.assertEqual(self.reload().order_status, "completed")


class FcmTokenTestCase(AppTestCase):
    def test_register_and_clear_token(self):
        self.make_user("buyer-1")
        res = self.client.post("/api/users/fcm-token", json={"token": "tok-new"}, headers=self.auth_headers("buyer-1"))
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.get_json()["user"]["has_fcm_token"])

        res = self.client.delete("/api/users/fcm-token", headers=self.auth_headers("buyer-1"))
        self.assertEqual(res.status_code, 200)
        db.session.expire_all()
        self.assertIsNone(db.session.get(User, "buyer-1").fcm_token)

    def test_token_required(self):
        self.make_user("buyer-1")
        res = self.client.post("/api/users/fcm-token", json={}, headers=self.auth_headers("buyer-1"))
        self.assertEqual(res.status_code, 400)


if __name__ == "__main__":
    unittest.main()
