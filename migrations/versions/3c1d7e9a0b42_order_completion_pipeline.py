"""order completion pipeline tables

Revision ID: 3c1d7e9a0b42
Revises:
Create Date: 2025-03-01 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "3c1d7e9a0b42"
down_revision = None
branch_labels = None
depends_on = None


def _table_exists(bind, table_name: str) -> bool:
    try:
        return sa.inspect(bind).has_table(table_name)
    except Exception:
        return False


def upgrade():
    bind = op.get_bind()

    if not _table_exists(bind, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.String(length=64), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=False, server_default=""),
            sa.Column("phone", sa.String(length=32), nullable=True),
            sa.Column("point", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("fcm_token", sa.String(length=512), nullable=True),
            sa.Column("user_type", sa.String(length=16), nullable=False, server_default="user"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(bind, "orders"):
        op.create_table(
            "orders",
            sa.Column("id", sa.String(length=64), nullable=False),
            sa.Column("order_number", sa.String(length=16), nullable=False),
            sa.Column("uid", sa.String(length=64), nullable=False),
            sa.Column("store_id", sa.String(length=64), nullable=True),
            sa.Column("store_name", sa.String(length=160), nullable=False, server_default=""),
            sa.Column("partner_id", sa.String(length=64), nullable=True),
            sa.Column("partner_phone", sa.String(length=32), nullable=True),
            sa.Column("phone", sa.String(length=32), nullable=True),
            sa.Column("order_status", sa.String(length=32), nullable=False, server_default="pending"),
            sa.Column("payment_status", sa.String(length=16), nullable=False, server_default="unpaid"),
            sa.Column("items", sa.JSON(), nullable=False),
            sa.Column("payment_info", sa.JSON(), nullable=False),
            sa.Column("payment_id", sa.JSON(), nullable=False),
            sa.Column("order_dates", sa.JSON(), nullable=False),
            sa.Column("used_point", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("total_price", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("total_product_price", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("total_quantity", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("delivery_fee", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("delivery_method", sa.String(length=32), nullable=True),
            sa.Column("delivery_date", sa.String(length=10), nullable=True),
            sa.Column("delivery_time", sa.String(length=5), nullable=True),
            sa.Column("tracking_info", sa.JSON(), nullable=True),
            sa.Column("confirmed_at", sa.DateTime(), nullable=True),
            sa.Column("confirmation_type", sa.String(length=16), nullable=True),
            sa.Column("settlement_status", sa.String(length=16), nullable=True),
            sa.Column("notification_task_id", sa.String(length=160), nullable=True),
            sa.Column("auto_complete_task_id", sa.String(length=160), nullable=True),
            sa.Column("notification_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("notification_sent_at", sa.DateTime(), nullable=True),
            sa.Column("shipping_started_at", sa.DateTime(), nullable=True),
            sa.Column("verified_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["uid"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_orders_order_number", "orders", ["order_number"], unique=True)
        op.create_index("ix_orders_uid", "orders", ["uid"], unique=False)
        op.create_index("ix_orders_store_id", "orders", ["store_id"], unique=False)
        op.create_index("ix_orders_partner_id", "orders", ["partner_id"], unique=False)
        op.create_index("ix_orders_order_status", "orders", ["order_status"], unique=False)

    if not _table_exists(bind, "point_ledger_entries"):
        op.create_table(
            "point_ledger_entries",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("uid", sa.String(length=64), nullable=False),
            sa.Column("amount", sa.Integer(), nullable=False),
            sa.Column("entry_type", sa.String(length=16), nullable=False, server_default="used"),
            sa.Column("reason", sa.String(length=240), nullable=True),
            sa.Column("order_id", sa.String(length=64), nullable=False),
            sa.Column("payment_id", sa.String(length=160), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("order_id", "payment_id", "entry_type", name="uq_point_ledger_order_payment"),
        )
        op.create_index("ix_point_ledger_entries_uid", "point_ledger_entries", ["uid"], unique=False)
        op.create_index("ix_point_ledger_entries_order_id", "point_ledger_entries", ["order_id"], unique=False)

    if not _table_exists(bind, "scheduled_tasks"):
        op.create_table(
            "scheduled_tasks",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=160), nullable=False),
            sa.Column("purpose", sa.String(length=32), nullable=False),
            sa.Column("order_id", sa.String(length=64), nullable=True),
            sa.Column("target_url", sa.String(length=512), nullable=False),
            sa.Column("payload_json", sa.Text(), nullable=False),
            sa.Column("schedule_time", sa.DateTime(), nullable=False),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="scheduled"),
            sa.Column("provider", sa.String(length=32), nullable=False, server_default="celery"),
            sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("last_error", sa.Text(), nullable=True),
            sa.Column("claimed_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_scheduled_tasks_name", "scheduled_tasks", ["name"], unique=True)
        op.create_index("ix_scheduled_tasks_order_id", "scheduled_tasks", ["order_id"], unique=False)
        op.create_index("ix_scheduled_tasks_status_schedule_time", "scheduled_tasks", ["status", "schedule_time"], unique=False)

    if not _table_exists(bind, "notification_logs"):
        op.create_table(
            "notification_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.String(length=64), nullable=True),
            sa.Column("order_id", sa.String(length=64), nullable=True),
            sa.Column("channel", sa.String(length=16), nullable=False),
            sa.Column("template", sa.String(length=64), nullable=True),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="sent"),
            sa.Column("provider", sa.String(length=32), nullable=True),
            sa.Column("provider_ref", sa.String(length=160), nullable=True),
            sa.Column("error", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notification_logs_user_id", "notification_logs", ["user_id"], unique=False)
        op.create_index("ix_notification_logs_order_id", "notification_logs", ["order_id"], unique=False)

    if not _table_exists(bind, "job_runs"):
        op.create_table(
            "job_runs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("job_name", sa.String(length=64), nullable=False),
            sa.Column("order_id", sa.String(length=64), nullable=True),
            sa.Column("outcome", sa.String(length=32), nullable=True),
            sa.Column("ok", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("duration_ms", sa.Integer(), nullable=True),
            sa.Column("error", sa.Text(), nullable=True),
            sa.Column("ran_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_job_runs_job_name", "job_runs", ["job_name"], unique=False)
        op.create_index("ix_job_runs_order_id", "job_runs", ["order_id"], unique=False)
        op.create_index("ix_job_runs_ran_at", "job_runs", ["ran_at"], unique=False)


def downgrade():
    for table in ("job_runs", "notification_logs", "scheduled_tasks", "point_ledger_entries", "orders", "users"):
        op.drop_table(table)
