from __future__ import annotations

import unittest
from unittest import mock

from catering.extensions import db
from catering.models import NotificationLog, User
from catering.services import order_store
from catering.services.notification_fanout import (
    ORDER_AUTO_CONFIRMED,
    ORDER_CANCELLED,
    build_event_jobs,
    dispatch_order_event,
)
from catering.tasks.notification_tasks import send_alimtalk_notification, send_push_notification
from tests.support import AppTestCase


class NotificationFanoutTestCase(AppTestCase):
    def test_event_jobs_carry_order_variables(self):
        self.make_order(items=[
            {"productName": "도시락 세트", "quantity": 10, "unitPrice": 12000},
            {"productName": "음료", "quantity": 10, "unitPrice": 2000},
        ])
        push, alimtalk = build_event_jobs(order_store.get_order("order-1"), ORDER_AUTO_CONFIRMED)

        self.assertEqual(push.user_id, "buyer-1")
        self.assertEqual(push.data, {"type": ORDER_AUTO_CONFIRMED, "orderId": "order-1", "orderNumber": "AB12CD34"})
        self.assertIn("단모 케이터링", push.body)
        self.assertEqual(alimtalk.template_code, ORDER_AUTO_CONFIRMED)
        self.assertEqual(
            alimtalk.variables,
            {"storeName": "단모 케이터링", "orderNumber": "AB12CD34", "productName": "도시락 세트 외 1건"},
        )

    def test_buyer_phone_falls_back_to_user_record(self):
        self.make_user("buyer-1", phone="010-5555-6666")
        self.make_order(phone=None)
        _, alimtalk = build_event_jobs(order_store.get_order("order-1"), ORDER_CANCELLED)
        self.assertEqual(alimtalk.phone, "010-5555-6666")

    def test_unknown_event_rejected(self):
        self.make_order()
        with self.assertRaises(ValueError):
            build_event_jobs(order_store.get_order("order-1"), "ORDER_TELEPORTED")

    def test_dispatch_sends_push_and_alimtalk(self):
        self.make_user("buyer-1", fcm_token="tok-buyer")
        self.make_order()
        queued = dispatch_order_event(order_store.get_order("order-1"), ORDER_CANCELLED)

        self.assertEqual(queued, 2)
        self.assertEqual(len(self.clients.push.sent), 1)
        self.assertEqual(len(self.clients.messaging.sent), 1)
        statuses = sorted((log.channel, log.status) for log in NotificationLog.query.all())
        self.assertEqual(statuses, [("alimtalk", "sent"), ("push", "sent")])

    def test_missing_token_is_skipped(self):
        self.make_user("buyer-1", fcm_token=None)
        self.make_order()
        dispatch_order_event(order_store.get_order("order-1"), ORDER_CANCELLED)

        self.assertEqual(self.clients.push.sent, [])
        log = NotificationLog.query.filter_by(channel="push").one()
        self.assertEqual(log.status, "skipped")
        self.assertEqual(log.error, "no_token")

    def test_invalid_token_is_cleared(self):
        self.make_user("buyer-1", fcm_token="invalid-token-1")
        self.make_order()
        dispatch_order_event(order_store.get_order("order-1"), ORDER_AUTO_CONFIRMED)

        user = self.reload_user("buyer-1")
        self.assertIsNone(user.fcm_token)
        log = NotificationLog.query.filter_by(channel="push").one()
        self.assertEqual(log.status, "failed")
        # The alimtalk channel is independent of the push failure.
        self.assertEqual(len(self.clients.messaging.sent), 1)

    def test_enqueue_failure_is_not_raised(self):
        self.make_user("buyer-1", fcm_token="tok-buyer")
        self.make_order()
        with mock.patch.object(send_push_notification, "delay", side_effect=ConnectionError("broker down")), \
                mock.patch.object(send_alimtalk_notification, "delay", side_effect=ConnectionError("broker down")):
            queued = dispatch_order_event(order_store.get_order("order-1"), ORDER_CANCELLED)
        self.assertEqual(queued, 0)

    def reload_user(self, user_id: str) -> User:
        db.session.expire_all()
        return db.session.get(User, user_id)


class PushDisabledTestCase(AppTestCase):
    env_overrides = {"PUSH_PROVIDER": "disabled"}

    def test_push_task_skips_when_channel_disabled(self):
        self.make_user("buyer-1", fcm_token="tok-buyer")
        self.assertIsNone(self.clients.push)
        result = send_push_notification.apply(
            kwargs={"user_id": "buyer-1", "order_id": "order-1", "title": "t", "body": "b"}
        ).get()
        self.assertEqual(result["detail"], "push_disabled")


if __name__ == "__main__":
    unittest.main()
