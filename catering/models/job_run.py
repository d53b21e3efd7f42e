from datetime import datetime

from catering.extensions import db


class JobRun(db.Model):
    """One row per scheduled-callback execution (reminder, auto-complete)."""

    __tablename__ = "job_runs"

    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(64), nullable=False, index=True)
    order_id = db.Column(db.String(64), nullable=True, index=True)
    outcome = db.Column(db.String(32), nullable=True)  # done | skipped:<reason> | failed
    ok = db.Column(db.Boolean, nullable=False, default=True)
    duration_ms = db.Column(db.Integer, nullable=True)
    error = db.Column(db.Text, nullable=True)
    ran_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "job_name": self.job_name or "",
            "order_id": self.order_id or "",
            "outcome": self.outcome or "",
            "ok": bool(self.ok),
            "duration_ms": int(self.duration_ms) if self.duration_ms is not None else None,
            "error": self.error or "",
            "ran_at": self.ran_at.isoformat() if self.ran_at else None,
        }
