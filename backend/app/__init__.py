import os
import subprocess
from pathlib import Path

import click
from flask import Flask, g, jsonify, request
from sqlalchemy import text
from werkzeug.exceptions import HTTPException

from app.extensions import cors, db, migrate
from app.integrations.indexing.factory import indexing_health
from app.integrations.messaging.factory import messaging_health
from app.integrations.payments.factory import payment_health
from app.models import User
from app.segments.segment_admin import admin_bp
from app.segments.segment_auth import auth_bp
from app.segments.segment_fraud import fraud_bp
from app.segments.segment_indexing import indexing_bp
from app.segments.segment_listings import listings_bp
from app.segments.segment_messages import messages_bp
from app.segments.segment_notifications import notifications_bp
from app.segments.segment_orders_api import orders_bp
from app.segments.segment_payment_webhooks import webhooks_bp
from app.segments.segment_payouts import payouts_bp
from app.segments.segment_promotions import promotions_bp
from app.segments.segment_reviews import reviews_bp
from app.services.fees import seed_default_fees
from app.utils.integration_settings import get_settings
from app.utils.observability import init_sentry, install_request_observers

BLUEPRINTS = (
    auth_bp,
    listings_bp,
    orders_bp,
    payouts_bp,
    reviews_bp,
    messages_bp,
    promotions_bp,
    notifications_bp,
    webhooks_bp,
    fraud_bp,
    indexing_bp,
    admin_bp,
)


def _resolve_alembic_head() -> str:
    try:
        from alembic.config import Config
        from alembic.script import ScriptDirectory

        migrations_dir = Path(__file__).resolve().parents[1] / "migrations"
        cfg = Config(str(migrations_dir / "alembic.ini"))
        cfg.set_main_option("script_location", str(migrations_dir))
        heads = ScriptDirectory.from_config(cfg).get_heads()
        return heads[0] if heads else "unknown"
    except Exception:
        return "unknown"


def _resolve_git_sha() -> str:
    for env_key in ("GIT_SHA", "SOURCE_VERSION"):
        val = (os.getenv(env_key) or "").strip()
        if val:
            return val
    try:
        out = subprocess.check_output(
            ["git", "rev-parse", "HEAD"],
            cwd=str(Path(__file__).resolve().parents[1]),
            stderr=subprocess.DEVNULL,
        )
        return out.decode().strip()
    except (OSError, subprocess.CalledProcessError):
        return "unknown"


def _env_int(name: str, default: int, *, minimum: int = 1, maximum: int = 100000) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        value = int(raw) if raw else int(default)
    except ValueError:
        value = int(default)
    return max(minimum, min(value, maximum))


def _environment() -> str:
    return (os.getenv("PIATA_ENV", "dev") or "dev").strip().lower()


def create_app(test_config: dict | None = None):
    app = Flask(__name__)
    init_sentry(app)

    env = _environment()

    # Production safety checks
    if env in ("prod", "production"):
        secret = (os.getenv("SECRET_KEY") or "").strip()
        if not secret or len(secret) < 16:
            raise RuntimeError("SECRET_KEY must be set and at least 16 chars in production")
        if not (os.getenv("DATABASE_URL") or "").strip() and not (os.getenv("SQLALCHEMY_DATABASE_URI") or "").strip():
            raise RuntimeError("DATABASE_URL (or SQLALCHEMY_DATABASE_URI) must be set in production")

    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", "dev-secret")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["MARKETPLACE_CURRENCY"] = (os.getenv("MARKETPLACE_CURRENCY") or "ron").strip().lower()
    app.config["PUBLIC_SITE_URL"] = (os.getenv("PUBLIC_SITE_URL") or "http://localhost:5173").strip().rstrip("/")
    app.config["ORDER_CANCEL_WINDOW_HOURS"] = _env_int("ORDER_CANCEL_WINDOW_HOURS", 24, minimum=1, maximum=720)
    app.config["TRACKING_REMINDER_HOURS"] = _env_int("TRACKING_REMINDER_HOURS", 48, minimum=1, maximum=720)
    app.config["VERIFY_PAYMENT_MAX_ATTEMPTS_PER_HOUR"] = _env_int("VERIFY_PAYMENT_MAX_ATTEMPTS_PER_HOUR", 15, minimum=1, maximum=1000)

    instance_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "instance"))
    os.makedirs(instance_dir, exist_ok=True)

    database_url = os.getenv("SQLALCHEMY_DATABASE_URI") or os.getenv("DATABASE_URL")
    if not database_url:
        database_url = f"sqlite:///{os.path.join(instance_dir, 'piata.db').replace(os.sep, '/')}"
    if database_url.startswith("postgres://"):
        database_url = "postgresql://" + database_url[len("postgres://"):]
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    engine_options = {
        "pool_pre_ping": True,
        "pool_reset_on_return": "rollback",
        "pool_recycle": _env_int("DB_POOL_RECYCLE_SECONDS", 1800, minimum=60, maximum=86400),
    }
    if not database_url.startswith("sqlite://"):
        engine_options.update(
            {
                "pool_size": _env_int("DB_POOL_SIZE", 10, minimum=1, maximum=200),
                "max_overflow": _env_int("DB_MAX_OVERFLOW", 20, minimum=0, maximum=500),
                "pool_timeout": _env_int("DB_POOL_TIMEOUT_SECONDS", 30, minimum=1, maximum=300),
            }
        )
        app.logger.info(
            "db_pooling_enabled pool_size=%s max_overflow=%s pool_timeout=%s pool_recycle=%s",
            engine_options["pool_size"],
            engine_options["max_overflow"],
            engine_options["pool_timeout"],
            engine_options["pool_recycle"],
        )
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    if test_config:
        app.config.update(test_config)

    cors_origins = (os.getenv("CORS_ORIGINS") or "").strip()
    if env in ("prod", "production"):
        origins = [o.strip() for o in cors_origins.split(",") if o.strip()]
    else:
        origins = ["*"] if not cors_origins else [o.strip() for o in cors_origins.split(",") if o.strip()]
    cors.init_app(app, resources={r"/api/*": {"origins": origins}})

    db.init_app(app)
    migrate.init_app(app, db)
    install_request_observers(app)

    def _error_payload(error: str, message: str, status: int) -> dict:
        payload = {"ok": False, "error": error, "message": message, "status": status}
        rid = (getattr(g, "request_id", "") or "").strip()
        if rid:
            payload["trace_id"] = rid
        return payload

    @app.errorhandler(HTTPException)
    def _api_http_exception(error: HTTPException):
        if not request.path.startswith("/api/"):
            return error
        status = int(error.code or 500)
        return jsonify(_error_payload(error.name, error.description or error.name, status)), status

    @app.errorhandler(Exception)
    def _api_unhandled_exception(error: Exception):
        app.logger.exception("unhandled_exception path=%s", request.path)
        db.session.rollback()
        return jsonify(_error_payload("InternalServerError", "Internal server error", 500)), 500

    for bp in BLUEPRINTS:
        app.register_blueprint(bp)

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
        payload = {
            "ok": db_state == "ok",
            "service": "piata-backend",
            "env": env,
            "db": db_state,
            "git_sha": _resolve_git_sha(),
            "alembic_head": _resolve_alembic_head(),
        }
        if db_error:
            payload["db_error"] = db_error
        else:
            settings = get_settings()
            payload["integrations"] = {
                "mode": settings.integrations_mode,
                "payments": payment_health(settings),
                "messaging": messaging_health(settings),
                "indexing": indexing_health(settings),
            }
        return jsonify(payload), 200 if db_state == "ok" else 503

    @app.get("/")
    def root():
        return jsonify({"ok": True, "service": "piata-backend", "env": env})

    @app.teardown_request
    def _cleanup_db_session(exc):
        try:
            if exc is not None:
                db.session.rollback()
        finally:
            db.session.remove()

    @app.cli.command("bootstrap-admin")
    def bootstrap_admin():
        allow = (os.getenv("ALLOW_ADMIN_BOOTSTRAP") or "").strip() == "1"
        if _environment() not in ("dev", "development", "local", "test") and not allow:
            raise click.ClickException("Admin bootstrap disabled. Set ALLOW_ADMIN_BOOTSTRAP=1 or PIATA_ENV=dev.")

        email = (os.getenv("ADMIN_EMAIL") or "").strip().lower()
        password = (os.getenv("ADMIN_PASSWORD") or "").strip()
        if not email or not password:
            raise click.ClickException("ADMIN_EMAIL and ADMIN_PASSWORD must be set.")

        u = User.query.filter_by(email=email).first()
        if u is None:
            u = User(display_name=email.split("@")[0], email=email)
            db.session.add(u)
        u.role = "admin"
        u.is_verified = True
        u.set_password(password)
        db.session.commit()
        click.echo(f"admin_bootstrap_ok {u.email}")

    @app.cli.command("seed-platform-fees")
    def seed_platform_fees():
        created = seed_default_fees()
        click.echo(f"platform_fees_seeded created={created}")

    return app
