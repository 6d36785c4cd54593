"""Flask application factory for the Smart Invoice payments service."""
import os
from datetime import datetime

import click
from flask import Flask, jsonify, request
from sqlalchemy.engine.url import make_url
from werkzeug.exceptions import HTTPException

from .config import DevelopmentConfig, ProductionConfig
from .extensions import db
from .routes.connect import connect_bp
from .routes.main import main_bp
from .routes.payments import payments_bp


def create_app(config_object=None):
    """Application factory to create configured Flask app instances."""
    app = Flask(__name__, instance_relative_config=True)

    # Ensure instance folder exists for SQLite
    os.makedirs(app.instance_path, exist_ok=True)

    _configure_app(app, config_object)
    _register_extensions(app)
    _register_blueprints(app)
    _register_shellcontext(app)
    _register_commands(app)
    _register_security_headers(app)
    _register_error_handlers(app)
    _setup_db(app)

    return app


def _configure_app(app, config_object=None):
    env = os.environ.get("FLASK_ENV") or os.environ.get("APP_ENV") or "development"
    if config_object:
        app.config.from_object(config_object)
    elif env.lower() == "production":
        app.config.from_object(ProductionConfig)
    else:
        app.config.from_object(DevelopmentConfig)

    if not app.config.get("STRIPE_SECRET_KEY"):
        app.logger.warning("STRIPE_SECRET_KEY is not set; payment endpoints will be unavailable")


def _register_extensions(app):
    db.init_app(app)


def _register_blueprints(app):
    app.register_blueprint(main_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(connect_bp)


def _register_shellcontext(app):
    @app.shell_context_processor
    def make_shell_context():
        from .models import (  # noqa: WPS433
            Client,
            Job,
            JobFrequency,
            JobStatus,
            Payment,
            PaymentStatus,
            Profile,
            ProfileRole,
            Receipt,
        )

        return {
            "db": db,
            "Profile": Profile,
            "ProfileRole": ProfileRole,
            "Client": Client,
            "Job": Job,
            "JobStatus": JobStatus,
            "JobFrequency": JobFrequency,
            "Payment": Payment,
            "PaymentStatus": PaymentStatus,
            "Receipt": Receipt,
        }


def _register_commands(app):
    @app.cli.command("process-recurring-jobs")
    @click.option("--date", "run_date", default=None, help="Run as if today were YYYY-MM-DD.")
    def process_recurring_jobs_command(run_date):
        """Create the next occurrence of recurring jobs settled yesterday."""
        from .services.recurring_service import process_recurring_jobs  # noqa: WPS433

        parsed = None
        if run_date:
            try:
                parsed = datetime.strptime(run_date, "%Y-%m-%d").date()
            except ValueError:
                raise click.BadParameter("Use the YYYY-MM-DD format.", param_hint="--date") from None

        summary = process_recurring_jobs(parsed)
        click.echo(
            f"Processed {summary['processed']} recurring jobs for {summary['date']}, "
            f"created {summary['created']} new jobs ({summary['skipped']} already existed)"
        )


def _setup_db(app):
    with app.app_context():
        # Import models to ensure metadata is loaded before table creation
        from . import models  # noqa: WPS433

        # Auto-create SQLite database file and parent directory when missing
        database_uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
        try:
            url = make_url(database_uri)
        except Exception:
            url = None

        if url and url.drivername.startswith("sqlite") and url.database:
            db_dir = os.path.dirname(url.database)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)
            if not os.path.exists(url.database):
                app.logger.info("Initializing SQLite database at %s", url.database)

        db.create_all()


def _register_security_headers(app):
    @app.after_request
    def add_security_headers(response):
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        if app.config.get("ENV") == "production":
            response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains")

        origin = request.headers.get("Origin")
        allowed = app.config.get("CORS_ALLOWED_ORIGINS") or []
        if origin and ("*" in allowed or origin in allowed):
            response.headers["Access-Control-Allow-Origin"] = "*" if "*" in allowed else origin
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PATCH, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type, x-client-info, apikey"
            response.headers["Access-Control-Max-Age"] = "86400"
            if "*" not in allowed:
                response.headers.add("Vary", "Origin")
        return response


def _register_error_handlers(app):
    def _render_error(error):
        is_http = isinstance(error, HTTPException)
        status_code = getattr(error, "code", None) or 500
        if not is_http:
            app.logger.exception("Unhandled exception on %s %s", request.method, request.path, exc_info=error)
            db.session.rollback()
            message = "An unexpected error occurred."
        else:
            message = getattr(error, "description", None) or getattr(error, "name", None) or "Request failed"

        return jsonify({"success": False, "error": message}), status_code

    tracked_codes = (400, 401, 403, 404, 405, 408, 413, 429, 500, 502, 503, 504)
    for code in tracked_codes:
        app.register_error_handler(code, _render_error)
    app.register_error_handler(Exception, _render_error)
