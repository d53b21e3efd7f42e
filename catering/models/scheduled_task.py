import json
from datetime import datetime

from catering.extensions import db


class ScheduledTask(db.Model):
    __tablename__ = "scheduled_tasks"
    __table_args__ = (db.Index("ix_scheduled_tasks_status_schedule_time", "status", "schedule_time"),)

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(160), nullable=False, unique=True, index=True)
    purpose = db.Column(db.String(32), nullable=False)  # notification | autocomplete
    order_id = db.Column(db.String(64), nullable=True, index=True)
    target_url = db.Column(db.String(512), nullable=False)
    payload_json = db.Column(db.Text, nullable=False, default="{}")
    schedule_time = db.Column(db.DateTime, nullable=False)  # UTC, naive

    status = db.Column(db.String(16), nullable=False, default="scheduled")  # scheduled | delivering | delivered | cancelled | failed
    provider = db.Column(db.String(32), nullable=False, default="celery")
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    claimed_at = db.Column(db.DateTime, nullable=True)  # set while a worker is posting the callback

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def payload(self) -> dict:
        try:
            data = json.loads(self.payload_json or "{}")
        except Exception:
            return {}
        return data if isinstance(data, dict) else {}

    def to_dict(self):
        return {
            "id": int(self.id),
            "name": self.name,
            "purpose": self.purpose,
            "order_id": self.order_id or "",
            "target_url": self.target_url,
            "payload": self.payload(),
            "schedule_time": self.schedule_time.isoformat() if self.schedule_time else None,
            "status": self.status,
            "provider": self.provider,
            "attempts": int(self.attempts or 0),
            "last_error": self.last_error or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
