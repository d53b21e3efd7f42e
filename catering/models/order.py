import secrets
import uuid
from datetime import datetime

from catering.extensions import db


ORDER_NUMBER_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


def new_order_id() -> str:
    return uuid.uuid4().hex


def new_order_number(length: int = 8) -> str:
    return "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(length))


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.String(64), primary_key=True, default=new_order_id)
    order_number = db.Column(db.String(16), nullable=False, unique=True, index=True, default=new_order_number)

    uid = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=False, index=True)
    store_id = db.Column(db.String(64), nullable=True, index=True)
    store_name = db.Column(db.String(160), nullable=False, default="")
    partner_id = db.Column(db.String(64), nullable=True, index=True)
    partner_phone = db.Column(db.String(32), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    order_status = db.Column(db.String(32), nullable=False, default="pending", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="unpaid")

    # Parallel arrays: payment_info[i] describes payment_id[i].
    items = db.Column(db.JSON, nullable=False, default=list)
    payment_info = db.Column(db.JSON, nullable=False, default=list)
    payment_id = db.Column(db.JSON, nullable=False, default=list)
    order_dates = db.Column(db.JSON, nullable=False, default=list)

    used_point = db.Column(db.Integer, nullable=False, default=0)
    total_price = db.Column(db.Integer, nullable=False, default=0)
    total_product_price = db.Column(db.Integer, nullable=False, default=0)
    total_quantity = db.Column(db.Integer, nullable=False, default=0)
    delivery_fee = db.Column(db.Integer, nullable=False, default=0)

    delivery_method = db.Column(db.String(32), nullable=True)  # parcel | quick | pickup
    delivery_date = db.Column(db.String(10), nullable=True)  # YYYY-MM-DD
    delivery_time = db.Column(db.String(5), nullable=True)  # HH:MM
    tracking_info = db.Column(db.JSON, nullable=True)

    confirmed_at = db.Column(db.DateTime, nullable=True)
    confirmation_type = db.Column(db.String(16), nullable=True)  # manual | auto
    settlement_status = db.Column(db.String(16), nullable=True)

    notification_task_id = db.Column(db.String(160), nullable=True)
    auto_complete_task_id = db.Column(db.String(160), nullable=True)
    notification_sent = db.Column(db.Boolean, nullable=False, default=False)
    notification_sent_at = db.Column(db.DateTime, nullable=True)
    shipping_started_at = db.Column(db.DateTime, nullable=True)
    verified_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "orderNumber": self.order_number,
            "uid": self.uid,
            "storeId": self.store_id or "",
            "storeName": self.store_name or "",
            "partnerId": self.partner_id or "",
            "orderStatus": self.order_status,
            "paymentStatus": self.payment_status,
            "items": list(self.items or []),
            "paymentInfo": list(self.payment_info or []),
            "paymentId": list(self.payment_id or []),
            "orderDates": list(self.order_dates or []),
            "usedPoint": int(self.used_point or 0),
            "totalPrice": int(self.total_price or 0),
            "totalProductPrice": int(self.total_product_price or 0),
            "totalQuantity": int(self.total_quantity or 0),
            "deliveryFee": int(self.delivery_fee or 0),
            "deliveryMethod": self.delivery_method or "",
            "deliveryDate": self.delivery_date or "",
            "deliveryTime": self.delivery_time or "",
            "trackingInfo": self.tracking_info,
            "confirmedAt": self.confirmed_at.isoformat() if self.confirmed_at else None,
            "confirmationType": self.confirmation_type,
            "settlementStatus": self.settlement_status,
            "notificationTaskId": self.notification_task_id,
            "autoCompleteTaskId": self.auto_complete_task_id,
            "notificationSent": bool(self.notification_sent),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
