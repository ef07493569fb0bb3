"""Attendance, homework and my-rates routes for the signed-in student."""

from __future__ import annotations

from dataclasses import asdict

from flask import Blueprint, jsonify

import engagement
from extensions import limiter
from helpers import approved_required, current_user_id, json_body

bp = Blueprint("attendance", __name__)


@bp.route("/api/board")
@approved_required
def api_board():
    return jsonify({"meetings": engagement.meeting_board(current_user_id())})


@bp.route("/api/meetings/<int:meeting_id>/attendance", methods=["POST"])
@approved_required
@limiter.limit("30 per minute")
def api_mark_attendance(meeting_id):
    mark = engagement.mark_attendance(current_user_id(), meeting_id)
    return jsonify({"success": True, "attendance": asdict(mark)})


@bp.route("/api/meetings/<int:meeting_id>/homework", methods=["POST"])
@approved_required
@limiter.limit("30 per minute")
def api_submit_homework(meeting_id):
    data = json_body()
    media = data.get("media_urls") or []
    if not isinstance(media, list):
        return jsonify({"error": "media_urls must be a list"}), 400
    submission = engagement.submit_homework(
        current_user_id(), meeting_id,
        note=str(data.get("note", "")).strip(),
        media_urls=media,
    )
    return jsonify({"success": True, "homework": asdict(submission)}), 201


@bp.route("/api/meetings/<int:meeting_id>/homework", methods=["DELETE"])
@approved_required
def api_delete_homework(meeting_id):
    result = engagement.delete_homework(current_user_id(), meeting_id)
    return jsonify({"success": True, **result})


@bp.route("/api/me/rates")
@approved_required
def api_my_rates():
    return jsonify(engagement.eligibility_snapshot(current_user_id()).to_dict())
