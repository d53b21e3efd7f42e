from datetime import datetime

from catering.extensions import db


class PointLedgerEntry(db.Model):
    __tablename__ = "point_ledger_entries"
    __table_args__ = (
        db.UniqueConstraint("order_id", "payment_id", "entry_type", name="uq_point_ledger_order_payment"),
    )

    id = db.Column(db.Integer, primary_key=True)
    uid = db.Column(db.String(64), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)  # signed; usage is negative
    entry_type = db.Column(db.String(16), nullable=False, default="used")
    reason = db.Column(db.String(240), nullable=True)
    order_id = db.Column(db.String(64), nullable=False, index=True)
    payment_id = db.Column(db.String(160), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "uid": self.uid,
            "amount": int(self.amount),
            "entry_type": self.entry_type or "",
            "reason": self.reason or "",
            "order_id": self.order_id,
            "payment_id": self.payment_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
