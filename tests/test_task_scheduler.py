from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from unittest import mock

from catering.errors import ExternalServiceTimeout
from catering.extensions import db
from catering.integrations.tasks.base import TaskQueue, TaskRegistration
from catering.integrations.tasks.celery_queue import CeleryTaskQueue
from catering.models import ScheduledTask
from catering.services.task_scheduler import cancel_task, compute_schedule, schedule_completion_tasks
from catering.utils.settings import IntegrationSettings
from tests.support import AppTestCase

NOW = datetime(2025, 3, 10, 1, 0, 0, tzinfo=timezone.utc)
SEOUL_SLOT_EPOCH = 1741618799  # 2025-03-10T23:59:59+09:00


def _settings(**overrides) -> IntegrationSettings:
    values = {"api_base_url": "https://api.example.test", "service_timezone": "Asia/Seoul"}
    values.update(overrides)
    return IntegrationSettings(**values)


class RecordingQueue(TaskQueue):
    name = "recording"

    def __init__(self, fail_on: str | None = None, existing: set[str] | None = None):
        self.fail_on = fail_on
        self.existing = existing or set()
        self.created: list[dict] = []
        self.deleted: list[str] = []

    def create_task(self, *, name, purpose, order_id, target_url, payload, schedule_time):
        if self.fail_on and self.fail_on in name:
            raise ExternalServiceTimeout("task_queue", "deadline exceeded")
        self.created.append(
            {"name": name, "purpose": purpose, "target_url": target_url, "payload": payload, "at": schedule_time}
        )
        return TaskRegistration(task_id=name, created=name not in self.existing)

    def delete_task(self, task_id):
        self.deleted.append(task_id)
        return True


class ComputeScheduleTestCase(unittest.TestCase):
    def test_parcel_reminder_fires_after_a_day(self):
        schedule = compute_schedule("o1", "parcel", "2025-03-10", now=NOW)
        self.assertEqual(schedule.reminder_at, NOW + timedelta(hours=24))

    def test_other_methods_remind_after_an_hour(self):
        for method in ("quick", "pickup", "direct"):
            schedule = compute_schedule("o1", method, "2025-03-10", now=NOW)
            self.assertEqual(schedule.reminder_at, NOW + timedelta(hours=1), method)

    def test_auto_complete_three_days_after_end_of_delivery_day(self):
        schedule = compute_schedule("o1", "parcel", "2025-03-10", now=NOW)
        self.assertEqual(schedule.auto_complete_at.isoformat(), "2025-03-13T23:59:59+09:00")

    def test_auto_complete_uses_delivery_time_when_given(self):
        schedule = compute_schedule("o1", "quick", "2025-03-10", "12:30", now=NOW)
        self.assertEqual(schedule.auto_complete_at.isoformat(), "2025-03-13T12:30:00+09:00")

    def test_names_are_deterministic_per_order_and_slot(self):
        first = compute_schedule("o1", "parcel", "2025-03-10", now=NOW)
        later = compute_schedule("o1", "parcel", "2025-03-10", now=NOW + timedelta(hours=5))
        self.assertEqual(first.reminder_name, later.reminder_name)
        self.assertEqual(first.auto_complete_name, later.auto_complete_name)
        self.assertEqual(first.reminder_name, f"order-notification-o1-{SEOUL_SLOT_EPOCH}")
        self.assertEqual(first.auto_complete_name, f"order-autocomplete-o1-{SEOUL_SLOT_EPOCH}")

    def test_different_slot_gives_different_names(self):
        first = compute_schedule("o1", "parcel", "2025-03-10", now=NOW)
        moved = compute_schedule("o1", "parcel", "2025-03-11", now=NOW)
        self.assertNotEqual(first.auto_complete_name, moved.auto_complete_name)

    def test_invalid_delivery_date_rejected(self):
        with self.assertRaises(ValueError):
            compute_schedule("o1", "parcel", "next tuesday", now=NOW)


class ScheduleCompletionTasksTestCase(unittest.TestCase):
    def test_registers_both_callbacks(self):
        queue = RecordingQueue()
        pair = schedule_completion_tasks("o1", "parcel", "2025-03-10", now=NOW, queue=queue, settings=_settings())

        self.assertEqual([c["purpose"] for c in queue.created], ["notification", "autocomplete"])
        self.assertEqual(queue.created[0]["target_url"], "https://api.example.test/api/orders/send-confirmation-reminder")
        self.assertEqual(queue.created[1]["target_url"], "https://api.example.test/api/orders/auto-complete")
        self.assertEqual(queue.created[1]["payload"], {"orderId": "o1"})
        self.assertEqual(pair.reminder_task_id, queue.created[0]["name"])
        self.assertEqual(pair.auto_complete_task_id, queue.created[1]["name"])

    def test_auto_complete_failure_cancels_new_reminder(self):
        queue = RecordingQueue(fail_on="autocomplete")
        with self.assertRaises(ExternalServiceTimeout):
            schedule_completion_tasks("o1", "parcel", "2025-03-10", now=NOW, queue=queue, settings=_settings())
        self.assertEqual(queue.deleted, [queue.created[0]["name"]])

    def test_auto_complete_failure_keeps_preexisting_reminder(self):
        name = f"order-notification-o1-{SEOUL_SLOT_EPOCH}"
        queue = RecordingQueue(fail_on="autocomplete", existing={name})
        with self.assertRaises(ExternalServiceTimeout):
            schedule_completion_tasks("o1", "parcel", "2025-03-10", now=NOW, queue=queue, settings=_settings())
        self.assertEqual(queue.deleted, [])

    def test_cancel_skips_local_ids(self):
        queue = RecordingQueue()
        self.assertTrue(cancel_task("local-notification-o1", queue=queue))
        self.assertTrue(cancel_task(None, queue=queue))
        self.assertEqual(queue.deleted, [])
        self.assertTrue(cancel_task("order-notification-o1-1", queue=queue))
        self.assertEqual(queue.deleted, ["order-notification-o1-1"])


class LocalQueueSchedulingTestCase(AppTestCase):
    def test_local_queue_returns_placeholder_ids(self):
        pair = schedule_completion_tasks("order-1", "parcel", "2025-03-10", now=NOW)
        self.assertEqual(pair.reminder_task_id, "local-notification-order-1")
        self.assertEqual(pair.auto_complete_task_id, "local-autocomplete-order-1")


class CeleryTaskQueueTestCase(AppTestCase):
    def setUp(self):
        super().setUp()
        self.queue = CeleryTaskQueue()
        patcher = mock.patch("catering.tasks.scheduled_callbacks.deliver_scheduled_callback")
        self.deliver = patcher.start()
        self.addCleanup(patcher.stop)
        control = mock.patch("catering.integrations.tasks.celery_queue.current_celery_app")
        self.celery = control.start()
        self.addCleanup(control.stop)

    def _create(self, name="order-autocomplete-o1-1"):
        return self.queue.create_task(
            name=name,
            purpose="autocomplete",
            order_id="o1",
            target_url="http://testserver/api/orders/auto-complete",
            payload={"orderId": "o1"},
            schedule_time=NOW + timedelta(days=3),
        )

    def test_create_persists_row_and_enqueues_with_eta(self):
        registration = self._create()

        self.assertTrue(registration.created)
        row = ScheduledTask.query.filter_by(name="order-autocomplete-o1-1").one()
        self.assertEqual(row.status, "scheduled")
        self.assertEqual(row.payload(), {"orderId": "o1"})
        self.assertEqual(row.schedule_time, datetime(2025, 3, 13, 1, 0, 0))
        _, kwargs = self.deliver.apply_async.call_args
        self.assertEqual(kwargs["task_id"], "order-autocomplete-o1-1")
        self.assertEqual(kwargs["kwargs"], {"task_name": "order-autocomplete-o1-1"})
        self.assertEqual(kwargs["eta"], NOW + timedelta(days=3))

    def test_existing_name_is_success_without_second_enqueue(self):
        self._create()
        again = self._create()
        self.assertFalse(again.created)
        self.assertEqual(again.task_id, "order-autocomplete-o1-1")
        self.assertEqual(self.deliver.apply_async.call_count, 1)
        self.assertEqual(ScheduledTask.query.count(), 1)

    def test_enqueue_failure_removes_row(self):
        self.deliver.apply_async.side_effect = ConnectionError("broker down")
        with self.assertRaises(ExternalServiceTimeout):
            self._create()
        self.assertEqual(ScheduledTask.query.count(), 0)

    def test_delete_marks_cancelled_and_revokes(self):
        self._create()
        self.assertTrue(self.queue.delete_task("order-autocomplete-o1-1"))
        row = ScheduledTask.query.filter_by(name="order-autocomplete-o1-1").one()
        self.assertEqual(row.status, "cancelled")
        self.celery.control.revoke.assert_called_once_with("order-autocomplete-o1-1")

    def test_delete_missing_or_finished_is_success(self):
        self.assertTrue(self.queue.delete_task("order-autocomplete-missing-1"))
        self._create()
        row = ScheduledTask.query.filter_by(name="order-autocomplete-o1-1").one()
        row.status = "delivered"
        db.session.commit()
        self.assertTrue(self.queue.delete_task("order-autocomplete-o1-1"))
        self.assertEqual(ScheduledTask.query.filter_by(name="order-autocomplete-o1-1").one().status, "delivered")
        self.celery.control.revoke.assert_not_called()


if __name__ == "__main__":
    unittest.main()
