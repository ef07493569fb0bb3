"""Core routes: health check, meeting catalog and track enrollments."""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from flask_login import login_required

import engagement
from database import get_db
from db_stores import EnrollmentStoreDB
from helpers import approved_required, current_user_id, json_body
from models import TrackKey
from quota import enrolled_tracks, resolve_quota

logger = logging.getLogger(__name__)

bp = Blueprint("core", __name__)


@bp.route("/health")
def health():
    db = get_db()
    try:
        db.execute("SELECT 1").fetchone()
    except db.Error:
        logger.exception("Health check failed")
        return jsonify({"status": "error", "detail": "Database unreachable"}), 503
    return jsonify({"status": "ok"})


@bp.route("/api/meetings")
@login_required
def api_meetings():
    data = engagement.catalog_with_tags(
        region=request.args.get("region", "").strip(),
        level=request.args.get("level", "").strip(),
    )
    return jsonify(data)


@bp.route("/api/enrollments")
@approved_required
def api_enrollments():
    enrollments = EnrollmentStoreDB(current_user_id()).all()
    return jsonify({
        "enrollments": [t.to_dict() for t in enrolled_tracks(enrollments)],
        "quota": resolve_quota(enrollments, engagement.sessions_per_enrollment()),
    })


@bp.route("/api/enrollments/toggle", methods=["POST"])
@approved_required
def api_enrollments_toggle():
    key = TrackKey.of(json_body())
    if not key.is_complete:
        return jsonify({"error": "region and level are required"}), 400
    store = EnrollmentStoreDB(current_user_id())
    enrolled = store.toggle(key.region, key.level)
    logger.info("student=%s %s %s/%s", current_user_id(),
                "enrolled in" if enrolled else "left", key.region, key.level)
    return jsonify({"success": True, "enrolled": enrolled, **key.to_dict()})
