"""Admin review and instructor routes: cohort rates, approvals, reminders."""

from __future__ import annotations

from flask import Blueprint, jsonify, request

import engagement
from db_stores import USER_STATUSES, StudentStoreDB
from helpers import admin_required, approved_required, current_user_id, json_body

bp = Blueprint("admin", __name__)


@bp.route("/api/admin/meetings/<int:meeting_id>/cohort")
@admin_required
def api_admin_cohort(meeting_id):
    cohort = engagement.cohort_rates(meeting_id)
    names = StudentStoreDB.names(cohort.absent_ids + cohort.homework_missing_ids)
    data = cohort.to_dict()
    data["absent"] = [{"id": sid, "name": names.get(sid, "")} for sid in cohort.absent_ids]
    data["homework_missing"] = [{"id": sid, "name": names.get(sid, "")} for sid in cohort.homework_missing_ids]
    return jsonify(data)


@bp.route("/api/admin/students/<int:student_id>/rates")
@admin_required
def api_admin_student_rates(student_id):
    if not StudentStoreDB.get(student_id):
        return jsonify({"error": "Student not found"}), 404
    return jsonify(engagement.eligibility_snapshot(student_id).to_dict())


@bp.route("/api/admin/users")
@admin_required
def api_admin_users():
    status = request.args.get("status", "").strip() or None
    if status and status not in USER_STATUSES:
        return jsonify({"error": f"status must be one of {', '.join(USER_STATUSES)}"}), 400
    return jsonify({"users": StudentStoreDB.list_by_status(status)})


@bp.route("/api/admin/users/<int:user_id>/status", methods=["POST"])
@admin_required
def api_admin_set_status(user_id):
    status = str(json_body().get("status", "")).strip()
    if status not in USER_STATUSES:
        return jsonify({"error": f"status must be one of {', '.join(USER_STATUSES)}"}), 400
    if not engagement.set_account_status(current_user_id(), user_id, status):
        return jsonify({"error": "User not found"}), 404
    return jsonify({"success": True, "user_id": user_id, "status": status})


@bp.route("/api/admin/reminders")
@admin_required
def api_admin_reminders():
    reminders = engagement.pending_reminders()
    return jsonify({"reminders": [r.to_dict() for r in reminders], "count": len(reminders)})


@bp.route("/api/instructor/overview")
@approved_required
def api_instructor_overview():
    """Cohort rates for the meetings the caller is assigned to in meeting_instructors.

    Any approved account may be an instructor; one with no assignments gets
    an empty overview rather than a 403.
    """
    return jsonify(engagement.instructor_overview(current_user_id()))
