import os

import click
from flask import Flask, g, jsonify, request
from sqlalchemy import text
from sqlalchemy.pool import StaticPool
from werkzeug.exceptions import HTTPException

from catering.celery_app import create_celery_app
from catering.extensions import cors, db, migrate
from catering.integrations.clients import EXTENSION_KEY, build_clients
from catering.integrations.messaging.factory import messaging_health
from catering.segments.segment_orders_api import orders_bp
from catering.segments.segment_payments import payments_bp
from catering.segments.segment_users import users_bp
from catering.utils.observability import init_sentry, install_request_observers
from catering.utils.settings import _env_int, load_settings


def _database_url(env: str) -> str:
    database_url = os.getenv("SQLALCHEMY_DATABASE_URI") or os.getenv("DATABASE_URL")
    if not database_url:
        if env in ("prod", "production"):
            raise RuntimeError("DATABASE_URL (or SQLALCHEMY_DATABASE_URI) must be set in production")
        database_url = "sqlite:///catering.db"
    # Heroku-style URLs are not accepted by SQLAlchemy 2.
    if database_url.startswith("postgres://"):
        database_url = "postgresql://" + database_url[len("postgres://"):]
    return database_url


def _engine_options(app, database_url: str) -> dict:
    if database_url == "sqlite:///:memory:":
        # One shared connection, otherwise every checkout sees an empty database.
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    options = {
        "pool_pre_ping": True,
        "pool_recycle": _env_int("DB_POOL_RECYCLE_SECONDS", 1800, minimum=60, maximum=86400),
    }
    if not database_url.startswith("sqlite://"):
        options.update(
            {
                "pool_size": _env_int("DB_POOL_SIZE", 10, minimum=1, maximum=200),
                "max_overflow": _env_int("DB_MAX_OVERFLOW", 20, minimum=0, maximum=500),
                "pool_timeout": _env_int("DB_POOL_TIMEOUT_SECONDS", 30, minimum=1, maximum=300),
            }
        )
        app.logger.info(
            "db_pooling_enabled pool_size=%s max_overflow=%s pool_timeout=%s",
            options["pool_size"],
            options["max_overflow"],
            options["pool_timeout"],
        )
    return options


def create_app():
    app = Flask(__name__)
    init_sentry(app)

    env = (os.getenv("CATERING_ENV", "dev") or "dev").strip().lower()

    # Production safety checks
    if env in ("prod", "production"):
        secret = (os.getenv("SECRET_KEY") or "").strip()
        if not secret or len(secret) < 16:
            raise RuntimeError("SECRET_KEY must be set and at least 16 chars in production")

    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", "dev-secret")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["JSON_AS_ASCII"] = False

    database_url = _database_url(env)
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = _engine_options(app, database_url)

    cors_origins = (os.getenv("CORS_ORIGINS") or "").strip()
    if env in ("prod", "production"):
        origins = [o.strip() for o in cors_origins.split(",") if o.strip()]
    else:
        origins = ["*"] if not cors_origins else [o.strip() for o in cors_origins.split(",") if o.strip()]
    cors.init_app(app, resources={r"/api/*": {"origins": origins}})

    db.init_app(app)
    migrate.init_app(app, db)
    install_request_observers(app)

    settings = load_settings()
    app.extensions[EXTENSION_KEY] = build_clients(settings)
    create_celery_app(app)

    if env in ("dev", "development", "local") and database_url.startswith("sqlite://"):
        with app.app_context():
            db.create_all()

    @app.errorhandler(HTTPException)
    def _api_http_exception(error: HTTPException):
        if not request.path.startswith("/api/"):
            return error
        payload = {
            "ok": False,
            "error": error.name,
            "message": error.description or error.name,
            "status": int(error.code or 500),
        }
        rid = (getattr(g, "request_id", "") or "").strip()
        if rid:
            payload["trace_id"] = rid
        return jsonify(payload), int(error.code or 500)

    @app.errorhandler(Exception)
    def _api_unhandled_exception(error: Exception):
        app.logger.exception("unhandled_exception path=%s", request.path)
        payload = {
            "ok": False,
            "error": "InternalServerError",
            "message": "Internal server error",
            "status": 500,
        }
        rid = (getattr(g, "request_id", "") or "").strip()
        if rid:
            payload["trace_id"] = rid
        return jsonify(payload), 500

    app.register_blueprint(payments_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(users_bp)

    @app.get("/api/health")
    def health():
        db_state = "ok"
        db_error = None
        try:
            with db.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            db_state = "fail"
            db_error = str(e)[:300]
        clients = app.extensions[EXTENSION_KEY]
        payload = {
            "ok": True,
            "service": "catering-orders",
            "env": env,
            "db": db_state,
            "integrations": {
                "mode": clients.settings.integrations_mode,
                "task_queue": clients.task_queue.name,
                "push": clients.push.name if clients.push else "disabled",
                "payments": clients.payments.name if clients.payments else "disabled",
                "alimtalk": messaging_health(clients.settings),
            },
        }
        if db_error:
            payload["db_error"] = db_error
        return jsonify(payload)

    @app.cli.command("schedule-completion-tasks")
    @click.option("--order-id", "order_id", required=True, help="Order to (re)schedule")
    def schedule_completion_tasks_command(order_id: str):
        """Register the reminder and auto-complete callbacks for a shipping order."""
        from catering.services import order_store
        from catering.services.task_scheduler import schedule_completion_tasks

        order = order_store.get_order(order_id)
        if order is None:
            raise click.ClickException(f"order {order_id} not found")
        if not order.delivery_date:
            raise click.ClickException(f"order {order_id} has no delivery date")
        pair = schedule_completion_tasks(order.id, order.delivery_method, order.delivery_date, order.delivery_time or None)
        order_store.update_order(
            order.id,
            {"notification_task_id": pair.reminder_task_id, "auto_complete_task_id": pair.auto_complete_task_id},
        )
        click.echo(f"scheduled {pair.reminder_task_id} {pair.auto_complete_task_id}")

    @app.cli.command("auto-complete-order")
    @click.option("--order-id", "order_id", required=True, help="Order to confirm automatically")
    def auto_complete_order_command(order_id: str):
        """Run the auto-complete handler once, outside the task queue."""
        from catering.services.order_completion import auto_complete_order

        outcome = auto_complete_order(order_id)
        click.echo(f"auto_complete order_id={order_id} skipped={outcome.skipped} reason={outcome.reason or '-'}")

    return app
