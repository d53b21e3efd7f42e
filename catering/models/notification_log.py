from datetime import datetime

from catering.extensions import db


class NotificationLog(db.Model):
    __tablename__ = "notification_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=True, index=True)
    order_id = db.Column(db.String(64), nullable=True, index=True)

    channel = db.Column(db.String(16), nullable=False)  # push | alimtalk
    template = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="sent")  # sent | failed | skipped
    provider = db.Column(db.String(32), nullable=True)
    provider_ref = db.Column(db.String(160), nullable=True)
    error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "user_id": self.user_id or "",
            "order_id": self.order_id or "",
            "channel": self.channel,
            "template": self.template or "",
            "status": self.status,
            "provider": self.provider or "",
            "provider_ref": self.provider_ref or "",
            "error": self.error or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
