# backend/spa_registry/__init__.py
from datetime import timedelta

from flask import Flask, request

from .config import Config
from .extensions import db, migrate
from .scheduler import Scheduler
from .time_utils import Clock, SystemClock


def register_jobs(scheduler: Scheduler) -> None:
    """Periodic sweeps: session idle expiry, third-party grant expiry, overdue payments."""
    from .services import credential_service, lifecycle_service, session_service

    scheduler.every(session_service.SESSION_SWEEP_INTERVAL, "session-idle-sweep", session_service.sweep_idle_sessions)
    scheduler.every(credential_service.GRANT_SWEEP_INTERVAL, "third-party-grant-sweep", credential_service.sweep_expired_grants)
    scheduler.every(timedelta(hours=24), "payment-overdue-check", lifecycle_service.check_overdue_payments)


def create_app(config_overrides: dict | None = None, clock: Clock | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Time source for every expiry decision; tests install a ManualClock
    app.extensions["clock"] = clock or SystemClock()

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.registry import registry_bp
    from .routes.lifecycle import lifecycle_bp
    from .routes.third_party import third_party_bp
    from .routes.audit import audit_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(registry_bp)
    app.register_blueprint(lifecycle_bp)
    app.register_blueprint(third_party_bp)
    app.register_blueprint(audit_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,DELETE,OPTIONS"
        return response

    scheduler = Scheduler(app)
    register_jobs(scheduler)
    app.extensions["scheduler"] = scheduler
    if app.config.get("SCHEDULER_ENABLED"):
        scheduler.start()

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
