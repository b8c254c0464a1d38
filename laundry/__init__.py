"""
Bags of Laundry backend: pickup and delivery laundry orders.
"""

import datetime
import logging
import os

import click
from flask import Flask, jsonify
from flask_cors import CORS

from laundry.errors import register_error_handlers
from laundry.extensions import db, limiter
from laundry.middleware import RequestIdFilter, RequestIdMiddleware
from laundry.rate_limit import init_rate_limiter
from laundry.services.payments import init_payments

LOG_FORMAT = "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"

_CRITICAL_ENV_VARS = [
    "JWT_SECRET",
    "SECRET_KEY",
    "DATABASE_URL",
]

_RECOMMENDED_ENV_VARS = [
    "STRIPE_SECRET_KEY",
    "STRIPE_WEBHOOK_SECRET",
    "TWILIO_ACCOUNT_SID",
    "RESEND_API_KEY",
    "CORS_ORIGINS",
]

DEFAULT_TIME_WINDOWS = [
    ("morning", datetime.time(8, 0), datetime.time(12, 0)),
    ("afternoon", datetime.time(12, 0), datetime.time(16, 0)),
    ("evening", datetime.time(16, 0), datetime.time(20, 0)),
]


def _configure_logging(app):
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestIdFilter())

    root = logging.getLogger("laundry")
    root.handlers = [handler]
    root.setLevel(app.config.get("LOG_LEVEL", "INFO"))


def _init_sentry(app):
    dsn = app.config.get("SENTRY_DSN")
    if not dsn:
        return
    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration
    sentry_sdk.init(
        dsn=dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=0.1,
    )


def _startup_checks(app, config_name):
    if config_name in ("development", "testing"):
        return
    startup_logger = logging.getLogger("laundry.startup")
    missing_critical = [v for v in _CRITICAL_ENV_VARS if not os.environ.get(v)]
    missing_recommended = [v for v in _RECOMMENDED_ENV_VARS if not os.environ.get(v)]

    if missing_critical:
        startup_logger.critical(
            "MISSING CRITICAL ENV VARS (app may not work correctly): %s",
            ", ".join(missing_critical),
        )
    if missing_recommended:
        startup_logger.warning("Missing recommended env vars: %s", ", ".join(missing_recommended))
    if not app.config.get("SENTRY_DSN"):
        startup_logger.warning("SENTRY_DSN is not set -- error monitoring is disabled.")
    if "*" in app.config.get("CORS_ORIGINS", []):
        startup_logger.critical("CORS_ORIGINS is '*' in a non-development environment!")


def create_app(config_name=None):
    """Flask application factory"""
    if config_name is None:
        config_name = os.getenv("FLASK_ENV", "development")

    from config import config
    app = Flask(__name__)
    app.config.from_object(config.get(config_name, config["default"]))

    _configure_logging(app)
    _init_sentry(app)
    _startup_checks(app, config_name)

    # Initialize extensions
    db.init_app(app)
    CORS(app, resources={r"/api/*": {"origins": app.config["CORS_ORIGINS"]}})
    limiter.init_app(app)
    init_rate_limiter(app, limiter.storage if limiter.enabled else None)
    init_payments(app)

    register_error_handlers(app)
    _register_blueprints(app)

    @app.after_request
    def set_security_headers(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'none'"
        if not app.debug and not app.testing:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    @app.route("/health")
    @limiter.exempt
    def health():
        return jsonify({"status": "healthy", "service": "bags-of-laundry-backend"}), 200

    _register_cli(app)

    app.wsgi_app = RequestIdMiddleware(app.wsgi_app)
    return app


def _register_blueprints(app):
    from laundry.blueprints import admin_bp, driver_bp, laundromat_bp, orders_bp, payments_bp, webhook_bp

    api_prefix = app.config["API_PREFIX"]
    app.register_blueprint(orders_bp, url_prefix=api_prefix)
    app.register_blueprint(payments_bp, url_prefix=api_prefix)
    app.register_blueprint(laundromat_bp, url_prefix=api_prefix)
    app.register_blueprint(driver_bp, url_prefix=f"{api_prefix}/driver")
    app.register_blueprint(admin_bp, url_prefix=f"{api_prefix}/admin")
    app.register_blueprint(webhook_bp, url_prefix=f"{api_prefix}/webhooks")


def _register_cli(app):
    @app.cli.command("init-db")
    def init_db():
        """Create all tables."""
        import laundry.models  # noqa: F401
        db.create_all()
        click.echo("Database tables created.")

    @app.cli.command("seed-time-windows")
    def seed_time_windows():
        """Create the morning/afternoon/evening pickup windows if missing."""
        from laundry.models import TimeWindow
        created = 0
        for label, start, end in DEFAULT_TIME_WINDOWS:
            if TimeWindow.query.filter_by(label=label).first():
                continue
            db.session.add(TimeWindow(label=label, start_time=start, end_time=end))
            created += 1
        db.session.commit()
        click.echo("Seeded {} time window(s).".format(created))

    @app.cli.command("issue-token")
    @click.argument("email")
    @click.option("--days", default=None, type=int, help="Token lifetime in days.")
    def issue_token(email, days):
        """Print a bearer token for the user with EMAIL."""
        from laundry.auth import generate_token
        from laundry.models import User
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            raise click.ClickException("No user with email {}".format(email))
        click.echo(generate_token(user.id, days))
