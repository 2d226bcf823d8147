import logging
import uuid
from datetime import datetime, timezone

from flask import Flask, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from config import Config
from extensions import db, limiter, migrate
from routes.auth_routes import auth_bp
from routes.export_routes import export_bp
from routes.fee_routes import fee_bp
from routes.notification_routes import notification_bp
from routes.reminder_routes import reminder_bp
from routes.stats_routes import stats_bp
from routes.student_routes import student_bp


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    app.logger.setLevel(level)


def _register_hooks(app: Flask) -> None:
    # Assign a per-request correlation id for tracing
    @app.before_request
    def _assign_request_id():
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]

    # Set modern security headers on every response
    @app.after_request
    def _set_security_headers(resp):
        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        resp.headers.setdefault("X-Frame-Options", "DENY")
        resp.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        resp.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
        if getattr(g, "request_id", None):
            resp.headers.setdefault("X-Request-ID", g.request_id)
        if getattr(g, "token_expiring_soon", False):
            resp.headers.setdefault("X-Token-Expiring-Soon", "1")
        return resp

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):
        if not request.path.startswith("/api"):
            return e
        return jsonify({"ok": False, "error": e.description or e.name}), e.code

    @app.errorhandler(Exception)
    def _unhandled(e: Exception):
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        if isinstance(e, SQLAlchemyError):
            db.session.rollback()
        return jsonify({"ok": False, "error": "Internal server error"}), 500


def create_app(overrides=None) -> Flask:
    app = Flask(__name__)

    # Load configuration from Config, then per-instance overrides (tests, scripts)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    _configure_logging(app)

    # Trust reverse proxy headers for scheme/host when enabled
    if app.config.get("TRUST_PROXY", True):
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)  # type: ignore[method-assign]

    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    _register_hooks(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(student_bp)
    app.register_blueprint(fee_bp)
    app.register_blueprint(reminder_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(stats_bp)
    app.register_blueprint(export_bp)

    @app.route("/health")
    def health():
        return jsonify({"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()})

    # Create tables if missing; schema changes go through `flask db migrate`
    if app.config.get("CREATE_TABLES", True):
        with app.app_context():
            try:
                db.create_all()
            except SQLAlchemyError:
                app.logger.exception("Could not create tables; is the database reachable?")

    if app.config.get("SCHEDULER_ENABLED"):
        from scheduler import start_scheduler

        app.extensions["reminder_scheduler"] = start_scheduler(app)
        app.logger.info(
            "Daily fee reminders scheduled at %02d:%02d %s",
            app.config["REMINDER_HOUR"], app.config["REMINDER_MINUTE"], app.config["REMINDER_TIMEZONE"],
        )

    return app


if __name__ == "__main__":
    create_app().run(debug=True)
