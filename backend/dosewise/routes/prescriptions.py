"""
Prescription routes – store and read extracted prescriptions.
Editing a medicine that already has a schedule regenerates that schedule.
"""

from flask import Blueprint, request, jsonify

from dosewise.middleware.user_context import get_current_user
from dosewise.services.prescription_service import (
    create_prescription,
    delete_prescription,
    get_medicine,
    get_prescription,
    list_prescriptions,
    update_medicine,
)

prescriptions_bp = Blueprint("prescriptions", __name__)


@prescriptions_bp.route("/", methods=["POST"])
def create():
    """
    Store the structured output of the extraction service.
    Body: {
        "doctor_name": "Dr. Rao",
        "consultation_date": "2024-01-01",
        "medicines": [
            {"name": "Amoxicillin", "frequency": "twice daily", "duration": "5 days"}
        ]
    }
    """
    data = request.get_json(force=True)
    medicines = data.get("medicines", [])
    if not isinstance(medicines, list):
        return jsonify({"error": "'medicines' must be a list."}), 400

    prescription = create_prescription(get_current_user().id, data)
    return jsonify({"prescription": prescription.to_dict(include_medicines=True)}), 201


@prescriptions_bp.route("/", methods=["GET"])
def list_all():
    prescriptions = list_prescriptions(get_current_user().id)
    return jsonify({
        "prescriptions": [p.to_dict(include_medicines=True) for p in prescriptions]
    }), 200


@prescriptions_bp.route("/<prescription_id>", methods=["GET"])
def get_one(prescription_id):
    prescription = get_prescription(prescription_id, get_current_user().id)
    if not prescription:
        return jsonify({"error": "Prescription not found."}), 404
    return jsonify({"prescription": prescription.to_dict(include_medicines=True)}), 200


@prescriptions_bp.route("/<prescription_id>", methods=["DELETE"])
def delete(prescription_id):
    prescription = get_prescription(prescription_id, get_current_user().id)
    if not prescription:
        return jsonify({"error": "Prescription not found."}), 404
    delete_prescription(prescription)
    return jsonify({"success": True}), 200


@prescriptions_bp.route("/medicines/<medicine_id>", methods=["PUT"])
def edit_medicine(medicine_id):
    """Edit medicine fields; an existing schedule is rebuilt (full replace)."""
    medicine = get_medicine(medicine_id, get_current_user().id)
    if not medicine:
        return jsonify({"error": "Medicine not found."}), 404

    data = request.get_json(force=True)
    medicine, schedules = update_medicine(medicine, data)
    return jsonify({
        "medicine": medicine.to_dict(),
        "regenerated": schedules is not None,
        "schedules": [s.to_dict() for s in schedules or []],
    }), 200
