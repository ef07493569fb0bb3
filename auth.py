"""
User Authentication: Flask-Login blueprint.

Provides register, login, logout and "who am I" routes as JSON endpoints.
Uses werkzeug.security for password hashing. New sign-ups start out
``pending`` until an admin approves them.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

from flask import Blueprint, jsonify, request
from flask_login import LoginManager, UserMixin, current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash, generate_password_hash

from audit import log_event
from database import get_db
from extensions import limiter

LOCKOUT_THRESHOLD = 5
LOCKOUT_MINUTES = 15

auth_bp = Blueprint("auth", __name__)
login_manager = LoginManager()


class User(UserMixin):
    """Wraps a DB user row for Flask-Login."""

    def __init__(self, id: int, name: str, email: str, role: str = "student", status: str = "pending"):
        self.id = id
        self.name = name
        self.email = email
        self.role = role
        self.status = status

    @property
    def is_admin(self):
        return self.role == "admin"

    @property
    def is_approved(self):
        return self.status == "approved"

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email,
                "role": self.role, "status": self.status}

    @staticmethod
    def get(user_id: int):
        db = get_db()
        row = db.execute(
            "SELECT id, name, email, role, status FROM users WHERE id = ?", (user_id,)
        ).fetchone()
        if row:
            return User(row["id"], row["name"], row["email"], row["role"], row["status"])
        return None

    @staticmethod
    def get_by_email(email: str):
        db = get_db()
        return db.execute(
            "SELECT id, name, email, password_hash, role, status, login_attempts, locked_until "
            "FROM users WHERE email = ?", (email,),
        ).fetchone()


@login_manager.user_loader
def load_user(user_id):
    return User.get(int(user_id))


@login_manager.unauthorized_handler
def _unauthorized():
    return jsonify({"error": "Sign-in required.", "code": "unauthenticated"}), 401


def _payload() -> dict:
    return request.get_json(silent=True) or request.form.to_dict()


def _validate_password(password: str) -> str | None:
    """Return an error message if password is too weak, else None."""
    if len(password) < 8:
        return "Password must be at least 8 characters."
    if not any(c.isalpha() for c in password) or not any(c.isdigit() for c in password):
        return "Password must contain letters and digits."
    return None


def _locked_minutes(row) -> int:
    """Minutes left on an account lockout, 0 when not locked."""
    locked_until = row["locked_until"] or ""
    if not locked_until:
        return 0
    try:
        remaining = (datetime.fromisoformat(locked_until) - datetime.now(timezone.utc)).total_seconds()
    except (ValueError, TypeError):
        return 0
    return math.ceil(remaining / 60) if remaining > 0 else 0


@auth_bp.route("/login", methods=["POST"])
@limiter.limit("5 per 15 minutes")
def login():
    data = _payload()
    email = str(data.get("email", "")).strip().lower()
    password = str(data.get("password", ""))

    if not email or not password:
        return jsonify({"error": "Email and password are required."}), 400

    row = User.get_by_email(email)
    if not row:
        return jsonify({"error": "Invalid email or password."}), 401

    mins = _locked_minutes(row)
    if mins:
        log_event("login_locked", row["id"], f"email={email}")
        return jsonify({"error": f"Account temporarily locked. Try again in {mins} minute(s)."}), 423

    db = get_db()
    if not row["password_hash"] or not check_password_hash(row["password_hash"], password):
        attempts = (row["login_attempts"] or 0) + 1
        if attempts >= LOCKOUT_THRESHOLD:
            until = (datetime.now(timezone.utc) + timedelta(minutes=LOCKOUT_MINUTES)).isoformat()
            db.execute("UPDATE users SET login_attempts=?, locked_until=? WHERE id=?",
                       (attempts, until, row["id"]))
        else:
            db.execute("UPDATE users SET login_attempts=? WHERE id=?", (attempts, row["id"]))
        db.commit()
        log_event("login_failed", row["id"], f"email={email} attempts={attempts}")
        return jsonify({"error": "Invalid email or password."}), 401

    db.execute("UPDATE users SET login_attempts=0, locked_until='' WHERE id=?", (row["id"],))
    db.commit()

    user = User(row["id"], row["name"], row["email"], row["role"], row["status"])
    login_user(user, remember=True)
    log_event("login_success", row["id"])
    return jsonify({"success": True, "user": user.to_dict()})


@auth_bp.route("/register", methods=["POST"])
@limiter.limit("3 per hour")
def register():
    data = _payload()
    name = str(data.get("name", "")).strip()
    email = str(data.get("email", "")).strip().lower()
    password = str(data.get("password", ""))

    if not name or not email or not password:
        return jsonify({"error": "All fields are required."}), 400

    pw_error = _validate_password(password)
    if pw_error:
        return jsonify({"error": pw_error}), 400

    if User.get_by_email(email):
        return jsonify({"error": "An account with this email already exists."}), 409

    db = get_db()
    cur = db.execute(
        "INSERT INTO users (name, email, password_hash, role, status, created_at) "
        "VALUES (?, ?, ?, 'student', 'pending', ?)",
        (name, email, generate_password_hash(password), datetime.now(timezone.utc).isoformat()),
    )
    db.commit()
    user_id = cur.lastrowid

    log_event("register", user_id, f"email={email}")
    user = User(user_id, name, email, "student", "pending")
    login_user(user, remember=True)
    return jsonify({"success": True, "user": user.to_dict()}), 201


@auth_bp.route("/logout")
def logout():
    if current_user.is_authenticated:
        log_event("logout", current_user.id)
    logout_user()
    return jsonify({"success": True})


@auth_bp.route("/api/me")
@login_required
def api_me():
    return jsonify({"user": current_user.to_dict()})
