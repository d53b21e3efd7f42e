from catering.models.user import User
from catering.models.order import Order, new_order_id, new_order_number
from catering.models.point_ledger import PointLedgerEntry
from catering.models.scheduled_task import ScheduledTask
from catering.models.notification_log import NotificationLog
from catering.models.job_run import JobRun

__all__ = [
    "User",
    "Order",
    "new_order_id",
    "new_order_number",
    "PointLedgerEntry",
    "ScheduledTask",
    "NotificationLog",
    "JobRun",
]
