"""
Cohort Academy: Flask Web Application

Learning-cohort management API: track enrollment, meeting attendance,
homework windows, completion rates against a fixed quota, and per-track
favorite / notification preferences.
"""

from __future__ import annotations

import logging
import os
from typing import Any

from flask import Flask, Response, jsonify

import database
from auth import auth_bp, login_manager
from blueprints import exempt_from_csrf, register_blueprints
from errors import EngineError
from extensions import limiter

logger = logging.getLogger(__name__)


def create_app(test_config: dict[str, Any] | None = None) -> Flask:
    app = Flask(__name__)

    # Load config: environment class first, test overrides on top
    from config import config_by_name
    env = "testing" if test_config and test_config.get("TESTING") else os.environ.get("FLASK_ENV", "development")
    cfg = config_by_name.get(env, config_by_name["development"])
    app.config.from_object(cfg)
    if test_config is not None:
        app.config.update(test_config)
    elif hasattr(cfg, "validate"):
        cfg.validate()

    app.secret_key = app.config["SECRET_KEY"]

    # CSRF protection; the JSON blueprints are exempted as they register
    from flask_wtf.csrf import CSRFProtect
    app.extensions["csrf"] = CSRFProtect(app)

    # Structured logging
    from logging_config import init_logging
    init_logging(app)

    # Register database teardown
    database.init_app(app)

    # Rate limiter (disabled in testing)
    limiter.init_app(app)
    if app.config.get("TESTING"):
        limiter.enabled = False

    # Auth blueprint and login manager
    app.register_blueprint(auth_bp)
    exempt_from_csrf(app, auth_bp)
    login_manager.init_app(app)

    register_blueprints(app)

    @app.errorhandler(EngineError)
    def handle_engine_error(exc: EngineError):
        if exc.status_code >= 500:
            logger.error("engine error: %s", exc.message, exc_info=exc)
        return jsonify(exc.to_dict()), exc.status_code

    # Security headers
    @app.after_request
    def set_security_headers(response: Response) -> Response:
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        if not app.debug:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    return app


if __name__ == "__main__":
    create_app().run(debug=True, port=5001)
