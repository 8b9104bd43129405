"""
Timeline routes – schedule generation, day reads, status tracking,
conflict detection and the assembled day view.
All reads and writes are scoped to the user resolved from X-User-Id.
"""

import logging
from datetime import datetime

from flask import Blueprint, request, jsonify

from dosewise.middleware.user_context import get_current_user
from dosewise.services.conflict_service import detect_conflicts
from dosewise.services.prescription_service import (
    get_medicine,
    get_prescription,
    get_user_medicines,
    list_prescriptions,
)
from dosewise.services.schedule_service import (
    coerce_date,
    day_bounds,
    generate_for_prescription,
    get_active_schedules,
    get_schedules_for_range,
    update_meal_timing,
)
from dosewise.services.status_service import (
    get_statuses_for_range,
    next_dose_for_medicine,
    record_status,
)
from dosewise.services.timeline_service import (
    TimelineFilters,
    assemble_timeline,
    timeline_statistics,
)

logger = logging.getLogger("dosewise.routes.timeline")

timeline_bp = Blueprint("timeline", __name__)


def _date_arg():
    raw = request.args.get("date", "").strip()
    if not raw:
        return None, (jsonify({"error": "Date parameter is required."}), 400)
    target = coerce_date(raw)
    if target is None:
        return None, (jsonify({"error": f"Invalid date '{raw}'."}), 400)
    return target, None


def _list_arg(name):
    raw = request.args.get(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


def _parse_datetime(value):
    """ISO timestamp → naive local datetime; None when absent or unparseable."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _current_conflicts(user_id):
    return detect_conflicts(get_active_schedules(user_id), get_user_medicines(user_id), user_id)


@timeline_bp.route("/generate-schedules", methods=["POST"])
def generate_schedules():
    """
    Regenerate schedules for every medicine of a prescription.
    Body: { "prescription_id": "...", "start_date": "2024-01-01", "end_date": null }
    """
    data = request.get_json(force=True)
    prescription_id = data.get("prescription_id")
    if not prescription_id:
        return jsonify({"error": "prescription_id is required."}), 400

    user = get_current_user()
    prescription = get_prescription(prescription_id, user.id)
    if not prescription:
        return jsonify({"error": "Prescription not found."}), 404

    start_date = data.get("start_date")
    if start_date and coerce_date(start_date) is None:
        logger.warning("Ignoring invalid start_date '%s' for prescription %s.", start_date, prescription_id)

    schedules = generate_for_prescription(prescription, user.id, start_date, data.get("end_date"))
    return jsonify({
        "schedules": [s.to_dict() for s in schedules],
        "message": f"Generated {len(schedules)} medication schedules",
    }), 200


@timeline_bp.route("/schedules", methods=["GET"])
def schedules_for_day():
    target, error = _date_arg()
    if error:
        return error
    start, end = day_bounds(target)
    schedules = get_schedules_for_range(get_current_user().id, start, end)
    return jsonify({"schedules": [s.to_dict() for s in schedules]}), 200


@timeline_bp.route("/status", methods=["GET"])
def statuses_for_day():
    target, error = _date_arg()
    if error:
        return error
    start, end = day_bounds(target)
    statuses = get_statuses_for_range(get_current_user().id, start, end)
    return jsonify({"statuses": [s.to_dict() for s in statuses]}), 200


@timeline_bp.route("/status/<schedule_id>", methods=["PUT"])
def update_status(schedule_id):
    """Body: { "status": "taken" | "missed" | "skipped", "notes": "...", "actual_time": "..." }"""
    data = request.get_json(force=True)
    try:
        entry = record_status(
            schedule_id,
            data.get("status", ""),
            notes=data.get("notes"),
            actual_time=_parse_datetime(data.get("actual_time")),
            user_id=get_current_user().id,
        )
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    if entry is None:
        return jsonify({"error": "Schedule not found."}), 404
    return jsonify({"status": entry.to_dict()}), 200


@timeline_bp.route("/conflicts", methods=["GET"])
def conflicts():
    found = _current_conflicts(get_current_user().id)
    return jsonify({"conflicts": [c.to_dict() for c in found]}), 200


@timeline_bp.route("/schedule/<schedule_id>/meal-timing", methods=["PUT"])
def meal_timing(schedule_id):
    """Body: { "meal_timing": "breakfast" | "lunch" | "dinner" | "evening" }"""
    data = request.get_json(force=True)
    try:
        schedule = update_meal_timing(schedule_id, data.get("meal_timing", ""), get_current_user().id)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    if schedule is None:
        return jsonify({"error": "Schedule not found."}), 404
    return jsonify({
        "success": True,
        "message": "Meal timing updated successfully",
        "schedule": schedule.to_dict(),
    }), 200


@timeline_bp.route("/day", methods=["GET"])
def day_view():
    """
    Assembled timeline for one day.
    Query: date (required), prescription_ids, priority_levels, statuses
    (comma-separated), show_conflicts (default true).
    """
    target, error = _date_arg()
    if error:
        return error

    user_id = get_current_user().id
    start, end = day_bounds(target)
    filters = TimelineFilters(
        prescription_ids=_list_arg("prescription_ids"),
        priority_levels=_list_arg("priority_levels"),
        statuses=_list_arg("statuses"),
        show_conflicts=request.args.get("show_conflicts", "true").lower() != "false",
    )

    day = assemble_timeline(
        schedules=get_schedules_for_range(user_id, start, end, active_only=True),
        medicines=get_user_medicines(user_id),
        prescriptions=list_prescriptions(user_id),
        statuses=get_statuses_for_range(user_id, start, end),
        conflicts=_current_conflicts(user_id) if filters.show_conflicts else [],
        target_date=target,
        filters=filters,
    )
    return jsonify({
        "timeline": day.to_dict(),
        "statistics": timeline_statistics(day),
    }), 200


@timeline_bp.route("/medicines/<medicine_id>/next-dose", methods=["GET"])
def next_dose(medicine_id):
    medicine = get_medicine(medicine_id, get_current_user().id)
    if not medicine:
        return jsonify({"error": "Medicine not found."}), 404

    last_taken, upcoming = next_dose_for_medicine(medicine)
    return jsonify({
        "medicine_id": medicine.id,
        "last_taken": last_taken.isoformat() if last_taken else None,
        "next_dose": upcoming.isoformat() if upcoming else None,
    }), 200
