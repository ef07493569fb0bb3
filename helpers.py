"""
Shared helpers used across blueprints.

Kept apart from app.py and auth.py to break circular imports.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import jsonify, request
from flask_login import current_user

from errors import Unauthenticated


def current_user_id() -> int:
    """Return the signed-in user's id; raise Unauthenticated without one."""
    if current_user and current_user.is_authenticated:
        return current_user.id
    raise Unauthenticated()


def approved_required(f: Callable) -> Callable:
    """Require a signed-in account that an admin has approved."""
    @wraps(f)
    def decorated(*args: Any, **kwargs: Any) -> Any:
        current_user_id()
        if getattr(current_user, "status", "pending") != "approved":
            return jsonify({"error": "Account pending approval.", "code": "not_approved",
                            "status": getattr(current_user, "status", "pending")}), 403
        return f(*args, **kwargs)
    return decorated


def admin_required(f: Callable) -> Callable:
    """Require the admin role."""
    @wraps(f)
    def decorated(*args: Any, **kwargs: Any) -> Any:
        current_user_id()
        if getattr(current_user, "role", "student") != "admin":
            return jsonify({"error": "Admin only.", "code": "forbidden"}), 403
        return f(*args, **kwargs)
    return decorated


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def optional_bool(data: dict, key: str) -> bool | None:
    """Read a tri-state flag: missing -> None, otherwise coerced to bool."""
    if key not in data or data[key] is None:
        return None
    value = data[key]
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)
