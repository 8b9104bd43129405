"""
Prescription service – stores extracted prescriptions and their medicines.

Documents are read by an external extraction service; this module only
persists its structured output so the scheduling engine can consume it.
Placeholder values the extractor emits ("Not mentioned", "Not specified")
are normalised to null.
"""

import logging
from typing import Optional

from dosewise.database import db
from dosewise.models.models import (
    ADMINISTRATION_ROUTES,
    PRIORITY_LEVELS,
    Medicine,
    Prescription,
)
from dosewise.services.schedule_service import coerce_date, regenerate_for_medicine

logger = logging.getLogger("dosewise.prescription")

PLACEHOLDER_VALUES = {"not mentioned", "not clearly visible", "not specified", "n/a", ""}

MEDICINE_FIELDS = (
    "name", "generic_name", "dosage", "frequency", "duration", "instructions",
    "quantity", "timing_instructions", "priority_level", "administration_route",
)


def _clean(value):
    if value is None:
        return None
    if isinstance(value, str) and value.strip().lower() in PLACEHOLDER_VALUES:
        return None
    return value.strip() if isinstance(value, str) else value


def _choice(value, allowed, default):
    value = (_clean(value) or "").lower()
    return value if value in allowed else default


def _apply_medicine_fields(medicine: Medicine, data: dict) -> None:
    for key in MEDICINE_FIELDS:
        if key not in data:
            continue
        if key == "priority_level":
            medicine.priority_level = _choice(data[key], PRIORITY_LEVELS, "medium")
        elif key == "administration_route":
            medicine.administration_route = _choice(data[key], ADMINISTRATION_ROUTES, "oral")
        elif key == "name":
            medicine.name = _clean(data[key]) or medicine.name
        else:
            setattr(medicine, key, _clean(data[key]))


def create_prescription(user_id: str, data: dict) -> Prescription:
    """Persist a prescription and its medicines from extracted fields."""
    prescription = Prescription(
        user_id=user_id,
        file_name=_clean(data.get("file_name")) or "manual-entry",
        doctor_name=_clean(data.get("doctor_name")),
        hospital_clinic=_clean(data.get("hospital_clinic")),
        consultation_date=coerce_date(_clean(data.get("consultation_date"))),
        patient_name=_clean(data.get("patient_name")),
        diagnosis=_clean(data.get("diagnosis")),
        special_instructions=_clean(data.get("special_instructions")),
        priority_level=_choice(data.get("priority_level"), PRIORITY_LEVELS, "medium"),
    )
    for item in data.get("medicines") or []:
        if not _clean(item.get("name")):
            logger.warning("Skipping medicine without a name in prescription for user %s.", user_id)
            continue
        medicine = Medicine(priority_level="medium", administration_route="oral")
        _apply_medicine_fields(medicine, item)
        prescription.medicines.append(medicine)

    db.session.add(prescription)
    db.session.commit()
    logger.info(
        "Stored prescription %s with %d medicines.", prescription.id, len(prescription.medicines)
    )
    return prescription


def list_prescriptions(user_id: str) -> list[Prescription]:
    return (
        Prescription.query
        .filter_by(user_id=user_id)
        .order_by(Prescription.created_at.desc())
        .all()
    )


def get_prescription(prescription_id: str, user_id: str) -> Optional[Prescription]:
    prescription = db.session.get(Prescription, prescription_id)
    if not prescription or prescription.user_id != user_id:
        return None
    return prescription


def get_medicine(medicine_id: str, user_id: str) -> Optional[Medicine]:
    medicine = db.session.get(Medicine, medicine_id)
    if not medicine or medicine.prescription.user_id != user_id:
        return None
    return medicine


def get_user_medicines(user_id: str) -> list[Medicine]:
    return (
        Medicine.query
        .join(Prescription, Medicine.prescription_id == Prescription.id)
        .filter(Prescription.user_id == user_id)
        .order_by(Medicine.created_at)
        .all()
    )


def update_medicine(medicine: Medicine, data: dict):
    """
    Edit a medicine. An existing schedule is regenerated from the edited
    fields; returns (medicine, regenerated schedules or None).
    """
    _apply_medicine_fields(medicine, data)
    db.session.commit()
    return medicine, regenerate_for_medicine(medicine)


def delete_prescription(prescription: Prescription) -> None:
    prescription_id = prescription.id
    db.session.delete(prescription)
    db.session.commit()
    logger.info("Deleted prescription %s.", prescription_id)
