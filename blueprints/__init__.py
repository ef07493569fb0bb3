"""
Blueprint registration for Cohort Academy.

All blueprints are registered without URL prefixes to keep URLs stable.
"""

from __future__ import annotations


def exempt_from_csrf(app, bp):
    """JSON routes authenticate by session cookie and never carry a form token."""
    csrf = app.extensions.get("csrf")
    if csrf:
        csrf.exempt(bp)


def register_blueprints(app):
    from blueprints.core import bp as core_bp
    from blueprints.attendance import bp as attendance_bp
    from blueprints.favorites import bp as favorites_bp
    from blueprints.admin import bp as admin_bp

    for bp in (core_bp, attendance_bp, favorites_bp, admin_bp):
        app.register_blueprint(bp)
        exempt_from_csrf(app, bp)
