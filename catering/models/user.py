from datetime import datetime

from catering.extensions import db


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(64), primary_key=True)

    name = db.Column(db.String(120), nullable=False, default="")
    phone = db.Column(db.String(32), nullable=True)

    # Balance may go negative; there is no overdraft check on debit.
    point = db.Column(db.Integer, nullable=False, default=0)
    fcm_token = db.Column(db.String(512), nullable=True)

    user_type = db.Column(db.String(16), nullable=False, default="user")  # user | partner | admin

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    @property
    def is_partner(self) -> bool:
        return (self.user_type or "").strip().lower() == "partner"

    @property
    def is_admin(self) -> bool:
        return (self.user_type or "").strip().lower() == "admin"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "point": int(self.point or 0),
            "has_fcm_token": bool(self.fcm_token),
            "user_type": self.user_type or "user",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
