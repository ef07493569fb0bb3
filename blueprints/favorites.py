"""Favorite and notification preference routes."""

from __future__ import annotations

from flask import Blueprint, jsonify

import engagement
from helpers import approved_required, current_user_id, json_body, optional_bool

bp = Blueprint("favorites", __name__)


@bp.route("/api/preferences")
@approved_required
def api_preferences():
    """Preferences for tracks that still exist, plus how many were hidden."""
    return jsonify(engagement.preference_view(current_user_id()).to_dict())


@bp.route("/api/preferences", methods=["POST"])
@approved_required
def api_set_preference():
    data = json_body()
    fav = optional_bool(data, "is_favorite")
    notify = optional_bool(data, "notify_enabled")
    if fav is None and notify is None:
        return jsonify({"error": "is_favorite or notify_enabled is required"}), 400
    try:
        row = engagement.set_preference(
            current_user_id(), data.get("region", ""), data.get("level", ""),
            is_favorite=fav, notify_enabled=notify,
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"success": True, "preference": row.to_dict()})


@bp.route("/api/favorites/toggle", methods=["POST"])
@approved_required
def api_toggle_favorite():
    data = json_body()
    try:
        row = engagement.toggle_favorite(current_user_id(), data.get("region", ""), data.get("level", ""))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"success": True, "preference": row.to_dict()})
