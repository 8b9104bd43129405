"""
SQLAlchemy ORM models – prescriptions, medicines and the dosing timeline.
Schedules and statuses denormalize the prescription/user ids of their
medicine so day-range queries never need a join.
"""

import uuid
from datetime import datetime
from dosewise.database import db

PRIORITY_LEVELS = ("critical", "high", "medium", "low")
ADMINISTRATION_ROUTES = ("oral", "topical", "injection", "inhalation", "sublingual")
MEAL_TIMINGS = ("breakfast", "lunch", "dinner", "evening")
STATUS_VALUES = ("upcoming", "taken", "missed", "skipped")


def _uuid() -> str:
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else None


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    username = db.Column(db.String(255), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now)

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "created_at": _iso(self.created_at),
        }


class Prescription(db.Model):
    __tablename__ = "prescriptions"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
    file_name = db.Column(db.String(512), nullable=False, default="manual-entry")
    doctor_name = db.Column(db.String(255))
    hospital_clinic = db.Column(db.String(255))
    consultation_date = db.Column(db.Date)
    patient_name = db.Column(db.String(255))
    diagnosis = db.Column(db.Text)
    special_instructions = db.Column(db.Text)
    processing_status = db.Column(db.String(20), nullable=False, default="completed")
    priority_level = db.Column(db.String(20), default="medium")
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    medicines = db.relationship(
        "Medicine", backref="prescription", lazy="selectin",
        cascade="all, delete-orphan", order_by="Medicine.created_at",
    )

    def to_dict(self, include_medicines=False):
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "file_name": self.file_name,
            "doctor_name": self.doctor_name,
            "hospital_clinic": self.hospital_clinic,
            "consultation_date": _iso(self.consultation_date),
            "patient_name": self.patient_name,
            "diagnosis": self.diagnosis,
            "special_instructions": self.special_instructions,
            "processing_status": self.processing_status,
            "priority_level": self.priority_level,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_medicines:
            data["medicines"] = [m.to_dict() for m in self.medicines]
        return data


class Medicine(db.Model):
    __tablename__ = "medicines"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    prescription_id = db.Column(
        db.String(36), db.ForeignKey("prescriptions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = db.Column(db.String(255), nullable=False)
    generic_name = db.Column(db.String(255))
    dosage = db.Column(db.String(255))
    frequency = db.Column(db.String(255))      # free text, e.g. "twice daily"
    duration = db.Column(db.String(255))       # free text, e.g. "7 days"
    instructions = db.Column(db.Text)
    quantity = db.Column(db.String(100))
    timing_instructions = db.Column(db.Text)   # "with food", "empty stomach", "bedtime"
    priority_level = db.Column(db.String(20), default="medium")
    administration_route = db.Column(db.String(20), default="oral")
    created_at = db.Column(db.DateTime, default=datetime.now)

    schedules = db.relationship(
        "MedicationSchedule", backref="medicine", lazy="select", cascade="all, delete-orphan"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "prescription_id": self.prescription_id,
            "name": self.name,
            "generic_name": self.generic_name,
            "dosage": self.dosage,
            "frequency": self.frequency,
            "duration": self.duration,
            "instructions": self.instructions,
            "quantity": self.quantity,
            "timing_instructions": self.timing_instructions,
            "priority_level": self.priority_level,
            "administration_route": self.administration_route,
        }


class MedicationSchedule(db.Model):
    """One planned administration instant of a medicine (a dosing event)."""
    __tablename__ = "medication_schedules"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    medicine_id = db.Column(
        db.String(36), db.ForeignKey("medicines.id", ondelete="CASCADE"), nullable=False, index=True
    )
    prescription_id = db.Column(
        db.String(36), db.ForeignKey("prescriptions.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
    scheduled_time = db.Column(db.DateTime, nullable=False, index=True)
    frequency = db.Column(db.String(255), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date)
    is_active = db.Column(db.Boolean, default=True)
    meal_timing = db.Column(db.String(20))     # breakfast, lunch, dinner, evening (oral only)
    created_at = db.Column(db.DateTime, default=datetime.now)

    statuses = db.relationship(
        "MedicationStatus", backref="schedule", lazy="select", cascade="all, delete-orphan"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "medicine_id": self.medicine_id,
            "prescription_id": self.prescription_id,
            "user_id": self.user_id,
            "scheduled_time": _iso(self.scheduled_time),
            "frequency": self.frequency,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "is_active": self.is_active,
            "meal_timing": self.meal_timing,
        }


class MedicationStatus(db.Model):
    """Outcome of one dosing event. The latest row per schedule wins."""
    __tablename__ = "medication_status"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    schedule_id = db.Column(
        db.String(36), db.ForeignKey("medication_schedules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    medicine_id = db.Column(db.String(36), db.ForeignKey("medicines.id", ondelete="CASCADE"), nullable=False)
    prescription_id = db.Column(db.String(36), db.ForeignKey("prescriptions.id", ondelete="CASCADE"), nullable=False)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
    scheduled_time = db.Column(db.DateTime, nullable=False)
    actual_time = db.Column(db.DateTime)
    status = db.Column(db.String(20), nullable=False, default="upcoming")
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    def to_dict(self):
        return {
            "id": self.id,
            "schedule_id": self.schedule_id,
            "medicine_id": self.medicine_id,
            "prescription_id": self.prescription_id,
            "user_id": self.user_id,
            "scheduled_time": _iso(self.scheduled_time),
            "actual_time": _iso(self.actual_time),
            "status": self.status,
            "notes": self.notes,
        }


class AuditLog(db.Model):
    __tablename__ = "audit_log"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.String(36))
    endpoint = db.Column(db.String(255))
    method = db.Column(db.String(10))
    status_code = db.Column(db.Integer)
    request_body = db.Column(db.Text)
    response_summary = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.now)
