"""
Status tracker – records what happened to individual dosing events.

Last write wins: re-marking an event overwrites its previous outcome and
no history is kept.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from dosewise.database import db
from dosewise.models.models import MedicationSchedule, MedicationStatus, Medicine
from dosewise.services.frequency_parser import calculate_next_dose

logger = logging.getLogger("dosewise.status")

RECORDABLE_STATUSES = ("taken", "missed", "skipped")


def get_latest_status(schedule_id: str) -> Optional[MedicationStatus]:
    return (
        MedicationStatus.query
        .filter_by(schedule_id=schedule_id)
        .order_by(MedicationStatus.updated_at.desc(), MedicationStatus.created_at.desc())
        .first()
    )


def record_status(
    schedule_id: str,
    status: str,
    notes: Optional[str] = None,
    actual_time: Optional[datetime] = None,
    user_id: Optional[str] = None,
) -> Optional[MedicationStatus]:
    """
    Upsert the outcome of one dosing event.

    Raises ValueError for a status outside taken/missed/skipped. Returns None
    when the schedule does not exist (or belongs to another user).
    """
    if status not in RECORDABLE_STATUSES:
        raise ValueError(
            f"Invalid status '{status}'. Expected one of: {', '.join(RECORDABLE_STATUSES)}."
        )

    schedule = db.session.get(MedicationSchedule, schedule_id)
    if schedule is None or (user_id is not None and schedule.user_id != user_id):
        return None

    entry = get_latest_status(schedule_id)
    if entry is None:
        entry = MedicationStatus(
            schedule_id=schedule.id,
            medicine_id=schedule.medicine_id,
            prescription_id=schedule.prescription_id,
            user_id=schedule.user_id,
            scheduled_time=schedule.scheduled_time,
        )
        db.session.add(entry)

    entry.status = status
    entry.notes = notes
    entry.actual_time = actual_time or datetime.now()
    entry.updated_at = datetime.now()

    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.error("Status update failed for schedule %s.", schedule_id, exc_info=True)
        raise

    logger.info("Schedule %s marked %s.", schedule_id, status)
    return entry


def get_statuses_for_range(user_id: str, start: datetime, end: datetime) -> list[MedicationStatus]:
    """Status rows of a user whose scheduled time falls in [start, end)."""
    return (
        MedicationStatus.query
        .filter(
            MedicationStatus.user_id == user_id,
            MedicationStatus.scheduled_time >= start,
            MedicationStatus.scheduled_time < end,
        )
        .order_by(MedicationStatus.scheduled_time)
        .all()
    )


def next_dose_for_medicine(medicine: Medicine) -> tuple[Optional[datetime], Optional[datetime]]:
    """(last taken, next dose) for a medicine, based on its latest "taken" row."""
    last = (
        MedicationStatus.query
        .filter_by(medicine_id=medicine.id, status="taken")
        .order_by(MedicationStatus.actual_time.desc())
        .first()
    )
    last_taken = last.actual_time if last else None
    return last_taken, calculate_next_dose(medicine.frequency, last_taken)
