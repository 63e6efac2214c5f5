from models.base import init_engine_and_session, Base
import os
import logging
from logging.handlers import RotatingFileHandler
from time import time
from urllib.parse import urlencode

from flask import Flask, request, g, jsonify
from flask_wtf.csrf import CSRFProtect, CSRFError, generate_csrf
from dotenv import load_dotenv
from sqlalchemy import text
from controllers.admin import admin_bp
from controllers.auth import auth_bp, login_manager
from controllers.payments import payments_bp
from controllers.payments import gateway_return as payments_webhook
from models.gateways_store import GatewayNotFoundError
from models.payments_store import PaymentNotFoundError
from services.metrics import init_app as init_metrics, REQUEST_COUNT, REQUEST_LATENCY
from services.payments.base import PaymentGatewayError
from services.payments.registry import register_gateways

# --- Load .env exactly once, here ---
load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return str(v).strip().lower() in ("1", "true", "yes", "on")


def _loggable_path() -> str:
    """request.full_path with the webhook secret blanked out."""
    if "wh_secret" not in request.args:
        return request.full_path
    args = [(k, "***" if k == "wh_secret" else v) for k, v in request.args.items(multi=True)]
    return f"{request.path}?{urlencode(args)}"


def _configure_logging(app: Flask) -> None:
    # default on in containers
    log_to_stdout = os.getenv("LOG_TO_STDOUT", "1") == "1"
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)

    if log_to_stdout:
        handler = logging.StreamHandler()
    else:
        log_dir = os.path.join(os.path.dirname(__file__), "log")
        try:
            os.makedirs(log_dir, exist_ok=True)
            handler = RotatingFileHandler(
                os.path.join(log_dir, "app.log"),
                maxBytes=5 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8",
            )
        except OSError:
            # read-only filesystem in some containers
            handler = logging.StreamHandler()

    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s [%(name)s] %(message)s"
    ))

    # avoid duplicate handlers on reload
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    app.logger.setLevel(logging.INFO)


def create_app(test_config: dict | None = None):
    app = Flask(__name__, instance_relative_config=True)

    # ---- Base config from environment (no hardcoded secrets) ----
    APP_ENV = os.getenv("APP_ENV", "development").lower()

    # SECRET_KEY:
    # - In production: must be provided
    # - In dev: fall back to a random key each run (sessions will reset on restart)
    secret_key = os.getenv("FLASK_SECRET_KEY")
    if not secret_key and APP_ENV == "production":
        raise RuntimeError("FLASK_SECRET_KEY must be set in production (.env)")
    if not secret_key:
        secret_key = os.urandom(32)  # dev-only fallback

    app.config.from_mapping(
        SECRET_KEY=secret_key,
        APP_ENV=APP_ENV,
        APP_NAME=os.getenv("APP_NAME", "Payments"),
        SITE_BASE_URL=os.getenv("SITE_BASE_URL"),
        MERCADOPAGO_API_URL=os.getenv(
            "MERCADOPAGO_API_URL", "https://api.mercadopago.com"),
        MERCADOPAGO_TIMEOUT=os.getenv("MERCADOPAGO_TIMEOUT", "15"),
    )
    if test_config:
        app.config.update(test_config)

    # ---- CSRF ----
    csrf = CSRFProtect()
    csrf.init_app(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning("CSRF failed: %s", getattr(e, "description", ""))
        return jsonify(error="csrf", reason=getattr(e, "description", "")), 400

    @app.get("/csrf-token")
    def csrf_token():
        return jsonify(csrf_token=generate_csrf())

    _configure_logging(app)

    # Ensure instance folder exists
    os.makedirs(app.instance_path, exist_ok=True)

    # ---- DB, gateways, users ----
    from models.users_db import get_user, create_user
    engine, _Session = init_engine_and_session()

    if _env_bool("AUTO_CREATE_SCHEMA", True):
        Base.metadata.create_all(engine, checkfirst=True)

    with app.app_context():
        register_gateways()

        # seed admin (optional)
        admin_pwd = os.getenv("ADMIN_PASSWORD")
        if admin_pwd and not get_user("admin"):
            create_user("admin", admin_pwd, role="admin")
            app.logger.info("Seeded admin user from .env")

    login_manager.init_app(app)

    # ---- Blueprints ----
    app.register_blueprint(auth_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(admin_bp)

    # The processor cannot carry our CSRF token
    csrf.exempt(payments_webhook)

    # Prometheus
    if _env_bool("METRICS_ENABLED", True):
        init_metrics(app)

    # ---- Errors ----

    @app.errorhandler(PaymentNotFoundError)
    @app.errorhandler(GatewayNotFoundError)
    def lookup_failed(e):
        app.logger.warning("%s %s -> %s", request.method, request.path, e)
        return jsonify(error=str(e)), 404

    @app.errorhandler(PaymentGatewayError)
    def gateway_error(e):
        app.logger.error("%s %s -> %s: %s", request.method, request.path, type(e).__name__, e)
        return jsonify(error="payment gateway error"), 500

    @app.errorhandler(404)
    def not_found(e):
        app.logger.warning("404 %s %s", request.method, request.path)
        return jsonify(error="not found", path=request.path), 404

    @app.errorhandler(405)
    def not_allowed(e):
        app.logger.warning("405 %s %s", request.method, request.path)
        return jsonify(error="method not allowed", path=request.path), 405

    @app.before_request
    def _start_timer():
        g._t0 = time()

    @app.after_request
    def _log_request(resp):
        ms = (time() - getattr(g, "_t0", time())) * 1000
        app.logger.info("%s %s %s %s %.1fms",
                        request.remote_addr, request.method, _loggable_path(), resp.status_code, ms)

        # --- Skip self-scrapes to keep series clean ---
        ep = request.endpoint or ""
        if ep == "static" or (request.path or "").startswith("/metrics"):
            return resp

        REQUEST_COUNT.labels(
            method=request.method, endpoint=ep.replace(".", "_") or "unknown",
            status=str(resp.status_code)).inc()
        REQUEST_LATENCY.labels(
            endpoint=ep.replace(".", "_") or "unknown", method=request.method).observe(ms / 1000.0)
        return resp

    @app.get("/healthz")
    def healthz():
        # Liveness: process is up, Flask can serve a simple request
        return jsonify(status="ok"), 200

    @app.get("/readyz")
    def readyz():
        # Readiness: app can talk to the DB
        try:
            engine, _ = init_engine_and_session()
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return jsonify(status="ok"), 200
        except Exception as e:
            app.logger.exception("Readiness check failed")
            return jsonify(status="error", error=str(e)), 500

    return app


if __name__ == "__main__":
    # TIP: use APP_ENV=production FLASK_SECRET_KEY=... when deploying
    app = create_app()
    app.run(host="0.0.0.0", port=8000, debug=(
        app.config["APP_ENV"] != "production"))
