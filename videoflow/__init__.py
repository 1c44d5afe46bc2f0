"""
Flask application factory and configuration.

This module contains the Flask application factory that initializes
and configures all extensions, services, blueprints, and security measures.
"""
import os
import uuid

import structlog
from flask import Flask, g, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import LoginManager
from flask_talisman import Talisman
from werkzeug.exceptions import HTTPException

from config.settings import DevelopmentConfig, ProductionConfig, TestingConfig
from videoflow.error_utils import handle_api_exception, safe_log_error
from videoflow.errors import AuthenticationError, VideoFlowError

logger = structlog.get_logger(__name__)


def create_app(config_class=None, services=None):
    """
    Create and configure Flask application.

    Args:
        config_class: Configuration class to use. If None, will be determined
                     from FLASK_ENV environment variable.
        services: ``Services`` container to initialize and attach. A default
                  one is built when omitted.

    Returns:
        Flask: Configured Flask application instance
    """
    app = Flask(__name__)

    # Determine configuration class if not provided
    if config_class is None:
        env = os.environ.get("FLASK_ENV", "development")
        if env == "production":
            config_class = ProductionConfig
        elif env == "testing":
            config_class = TestingConfig
        else:
            config_class = DevelopmentConfig

    app.config.from_object(config_class)

    # If running under pytest, force test-friendly overrides BEFORE initializing extensions
    if os.environ.get("PYTEST_CURRENT_TEST"):
        app.config.update(
            {
                "TESTING": True,
                "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
                "SQLALCHEMY_TRACK_MODIFICATIONS": False,
                "SQLALCHEMY_ENGINE_OPTIONS": {},
                "RATELIMIT_ENABLED": False,
                "FORCE_HTTPS": False,
            }
        )

    # Configure structured logging early (console only during tests)
    from videoflow.structured_logging import configure_structlog

    configure_structlog(app, role="web")

    # Enforce PostgreSQL outside tests: SQLite is reserved for tests only
    db_uri = app.config.get("SQLALCHEMY_DATABASE_URI") or ""
    if not app.config.get("TESTING") and db_uri.startswith("sqlite:"):
        raise RuntimeError(
            "SQLite is only supported in TESTING. Set DATABASE_URL to PostgreSQL."
        )

    init_extensions(app)

    if services is None:
        from videoflow.services import Services

        services = Services()
    services.init_app(app)

    register_blueprints(app)
    register_error_handlers(app)

    # Setup security headers (only in production or if explicitly enabled)
    if app.config.get("FORCE_HTTPS") or not app.debug:
        Talisman(
            app,
            force_https=app.config.get("FORCE_HTTPS", False),
            strict_transport_security=app.config.get("STRICT_TRANSPORT_SECURITY", True),
            content_security_policy=app.config.get("CONTENT_SECURITY_POLICY"),
        )

    return app


def init_extensions(app):
    """
    Initialize Flask extensions.

    Args:
        app: Flask application instance
    """
    from videoflow.models import User, db
    from videoflow.security import decode_token, extract_request_token
    from videoflow.structured_logging import bind_request_context

    db.init_app(app)

    # CORS for the browser frontend; the auth cookie must cross origins
    CORS(
        app,
        origins=[app.config.get("FRONTEND_URL", "http://localhost:3000")],
        supports_credentials=True,
    )

    @app.before_request
    def _assign_request_id():
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        bind_request_context(request_id=g.request_id)

    @app.teardown_request
    def _teardown_request(exc):
        # On request errors, ensure the transaction is rolled back.
        if exc is not None:
            db.session.rollback()

    # Rate limiting (can be disabled via RATELIMIT_ENABLED=False)
    if app.config.get("RATELIMIT_ENABLED", True):
        limiter = Limiter(
            key_func=get_remote_address,
            default_limits=[app.config.get("RATELIMIT_DEFAULT", "100 per 15 minutes")],
            storage_uri=app.config.get("RATELIMIT_STORAGE_URL", "memory://"),
        )
        limiter.init_app(app)

    # Stateless auth: every request carries a signed token (cookie or Bearer)
    login_manager = LoginManager()
    login_manager.init_app(app)

    @login_manager.request_loader
    def load_user_from_request(req):
        """Resolve the caller from the request token for Flask-Login."""
        token = extract_request_token(req)
        if not token:
            g.auth_error = AuthenticationError()
            return None
        try:
            payload = decode_token(token)
        except AuthenticationError as e:
            g.auth_error = e
            return None

        user = db.session.get(User, int(payload["sub"]))
        if user is None or not user.is_active:
            g.auth_error = AuthenticationError("Invalid or expired token")
            return None
        return user

    @login_manager.unauthorized_handler
    def unauthorized():
        raise getattr(g, "auth_error", None) or AuthenticationError()


def register_blueprints(flask_app):
    """
    Register Flask blueprints.

    Args:
        flask_app: Flask application instance
    """
    # All API endpoints are registered on the shared api_bp blueprint.
    # Import modules to register their routes, then register the blueprint once
    from videoflow.api import api_bp
    from videoflow.api import (  # noqa: F401 - registers routes on api_bp
        analytics,
        auth,
        comments,
        health,
        media,
        team,
        videos,
        youtube,
    )

    flask_app.register_blueprint(api_bp, url_prefix="/api")

    # Load balancers probe the bare path
    flask_app.add_url_rule(
        "/health", endpoint="health", view_func=health.health_check, methods=["GET"]
    )


def register_error_handlers(app):
    """
    Render every error as a JSON ``{"message": ...}`` body.

    Args:
        app: Flask application instance
    """
    from videoflow.models import db

    @app.errorhandler(VideoFlowError)
    def handle_videoflow_error(error):
        if error.status_code >= 500:
            safe_log_error(
                logger,
                "request_failed",
                exc_info=error,
                status=error.status_code,
                service=getattr(error, "service", None),
            )
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return jsonify({"message": error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        db.session.rollback()
        body, status = handle_api_exception(
            logger,
            "unhandled_exception",
            status_code=500,
            path=request.path,
            error=str(error),
        )
        return jsonify(body), status
