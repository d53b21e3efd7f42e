from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class TaskRegistration:
    task_id: str
    created: bool = True  # False when a task with the same name was already registered


class TaskQueue:
    """Named, time-delayed HTTP callbacks.

    ``create_task`` must treat an already-registered name as success and
    ``delete_task`` must treat a missing or already-finished task as success.
    """

    name = "unknown"

    def create_task(
        self,
        *,
        name: str,
        purpose: str,
        order_id: str,
        target_url: str,
        payload: dict,
        schedule_time: datetime,
    ) -> TaskRegistration:
        raise NotImplementedError

    def delete_task(self, task_id: str) -> bool:
        raise NotImplementedError
