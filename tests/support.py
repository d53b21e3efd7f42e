from __future__ import annotations

import os
import unittest

from catering import create_app
from catering.extensions import db
from catering.models import Order, User
from catering.utils.jwt_utils import create_token

TEST_ENV = {
    "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
    "DATABASE_URL": "sqlite:///:memory:",
    "CATERING_ENV": "test",
    "INTEGRATIONS_MODE": "sandbox",
    "PUSH_PROVIDER": "mock",
    "MESSAGING_PROVIDER": "mock",
    "PAYMENTS_PROVIDER": "mock",
    "TASK_QUEUE_PROVIDER": "local",
    "TASK_CALLBACK_SECRET": "",
    "SERVICE_TIMEZONE": "Asia/Seoul",
    "API_BASE_URL": "http://testserver",
    "CELERY_TASK_ALWAYS_EAGER": "1",
    "CELERY_BROKER_URL": "memory://",
    "CELERY_RESULT_BACKEND": "cache+memory://",
    "SENTRY_DSN": "",
    "MOCK_NOTIFY_FORCE_FAIL": "",
}


class AppTestCase(unittest.TestCase):
    env_overrides: dict = {}

    @classmethod
    def setUpClass(cls):
        env = {**TEST_ENV, **cls.env_overrides}
        cls._saved_env = {key: os.getenv(key) for key in env}
        for key, value in env.items():
            os.environ[key] = value
        cls.app = create_app()
        cls.app.config.update(TESTING=True)
        cls.client = cls.app.test_client()

    @classmethod
    def tearDownClass(cls):
        for key, value in cls._saved_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value

    def setUp(self):
        self.ctx = self.app.app_context()
        self.ctx.push()
        db.session.remove()
        db.drop_all()
        db.create_all()
        clients = self.app.extensions["catering"]
        for provider in (clients.push, clients.messaging):
            if provider is not None and hasattr(provider, "sent"):
                provider.sent.clear()

    def tearDown(self):
        db.session.remove()
        self.ctx.pop()

    @property
    def clients(self):
        return self.app.extensions["catering"]

    def make_user(self, user_id: str, *, point: int = 0, phone: str = "010-1234-5678", fcm_token: str | None = None,
                  user_type: str = "user") -> User:
        user = User(id=user_id, name=user_id, phone=phone, point=point, fcm_token=fcm_token, user_type=user_type)
        db.session.add(user)
        db.session.commit()
        return user

    def make_order(self, order_id: str = "order-1", **fields) -> Order:
        values = {
            "id": order_id,
            "order_number": fields.pop("order_number", "AB12CD34"),
            "uid": "buyer-1",
            "store_id": "store-1",
            "store_name": "단모 케이터링",
            "partner_id": "partner-1",
            "partner_phone": "010-9999-0000",
            "phone": "010-1234-5678",
            "order_status": "pending",
            "payment_status": "unpaid",
            "items": [{"productName": "도시락 세트", "quantity": 10, "unitPrice": 12000}],
            "payment_info": [],
            "payment_id": [],
            "order_dates": [],
            "total_product_price": 120000,
            "total_quantity": 10,
            "total_price": 123000,
            "delivery_fee": 3000,
            "delivery_method": "parcel",
            "delivery_date": "2025-03-10",
        }
        values.update(fields)
        order = Order(**values)
        db.session.add(order)
        db.session.commit()
        return order

    def auth_headers(self, user_id: str) -> dict:
        return {"Authorization": f"Bearer {create_token(user_id)}"}

    def reload(self, order_id: str = "order-1") -> Order:
        db.session.expire_all()
        return db.session.get(Order, order_id)
