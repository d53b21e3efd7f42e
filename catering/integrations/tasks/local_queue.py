from __future__ import annotations

import json
import logging
from datetime import datetime

from catering.integrations.tasks.base import TaskQueue, TaskRegistration

logger = logging.getLogger(__name__)

LOCAL_TASK_PREFIX = "local-"


class LocalTaskQueue(TaskQueue):
    """Development stand-in: logs the computed schedule, registers nothing triggerable."""

    name = "local"

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
        logger.info(
            json.dumps(
                {
                    "event": "local_task_scheduled",
                    "name": name,
                    "purpose": purpose,
                    "order_id": order_id,
                    "target_url": target_url,
                    "schedule_time": schedule_time.isoformat(),
                }
            )
        )
        return TaskRegistration(task_id=f"{LOCAL_TASK_PREFIX}{purpose}-{order_id}", created=True)

    def delete_task(self, task_id: str) -> bool:
        logger.info("local_task_cancel_skipped task_id=%s", task_id)
        return True
