"""
Rate limiter shared by the auth and engagement routes.

Created unbound here and attached in create_app(), so blueprints can import
it without circular imports.
"""

from __future__ import annotations

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, default_limits=["300 per hour"])
