"""
Schedule generation service.

Expands a medicine's free-text frequency/duration into concrete dated
dosing events and persists them with replace semantics: every existing
event of the medicine (and its recorded statuses) is deleted and the new
set inserted inside one transaction.

Ambiguous input never fails generation. Missing start dates, durations
and frequencies fall back to documented defaults and are logged as
warnings.
"""

import logging
import re
import uuid
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from dosewise.database import db
from dosewise.models.models import (
    MEAL_TIMINGS,
    MedicationSchedule,
    MedicationStatus,
    Medicine,
    Prescription,
)
from dosewise.services.frequency_parser import PATTERN_PRN, parse_frequency

logger = logging.getLogger("dosewise.schedule")

# Names that indicate an applied (non-swallowed) product even when the
# stated route is oral.
_APPLICATION_NAME_RE = re.compile(
    r"eye|skin|drop|ointment|apply|nasal|topical|cream|gel|spray", re.IGNORECASE
)
_FIRST_INT_RE = re.compile(r"(\d+)")

# (keywords, hours) checked in order; first match wins.
_APPLICATION_TIMES = [
    (("once",), [8]),
    (("twice", "2"), [8, 20]),
    (("three", "3"), [8, 14, 20]),
    (("four", "4"), [8, 12, 16, 20]),
]

_ORAL_TIMES = [
    (("once",), [8], ["breakfast"]),
    (("twice", "2"), [8, 20], ["breakfast", "dinner"]),
    (("three", "3"), [8, 13, 20], ["breakfast", "lunch", "dinner"]),
    (("four", "4"), [8, 12, 16, 20], ["breakfast", "lunch", "evening", "dinner"]),
]


def coerce_date(value) -> Optional[date]:
    """Accept a date, datetime or ISO string; anything unusable becomes None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def day_bounds(target: date) -> tuple[datetime, datetime]:
    """[start, end) of the local calendar day containing ``target``."""
    start = datetime.combine(target, time.min)
    return start, start + timedelta(days=1)


def is_application_route(medicine: Medicine) -> bool:
    route = (medicine.administration_route or "oral").strip().lower()
    if route != "oral":
        return True
    return bool(_APPLICATION_NAME_RE.search(medicine.name or ""))


def resolve_start_date(start_date, prescription: Prescription) -> date:
    """Caller date → consultation date → prescription creation → today."""
    resolved = coerce_date(start_date)
    if resolved:
        return resolved

    consultation = coerce_date(prescription.consultation_date)
    if consultation:
        logger.warning(
            "No valid start date for prescription %s, using consultation date %s.",
            prescription.id, consultation,
        )
        return consultation

    created = coerce_date(prescription.created_at)
    if created:
        logger.warning(
            "No valid start date or consultation date for prescription %s, using creation date %s.",
            prescription.id, created,
        )
        return created

    logger.warning(
        "No valid consultation date or creation date for prescription %s, using today as start date.",
        prescription.id,
    )
    return date.today()


def resolve_duration_days(medicine: Medicine) -> int:
    """First integer in the duration text; defaults to 1 day."""
    match = _FIRST_INT_RE.search(medicine.duration or "")
    days = int(match.group(1)) if match else 0
    if days < 1:
        logger.warning("No valid duration for medicine %s, defaulting to 1 day.", medicine.name)
        return 1
    return days


def assign_daily_times(frequency: str, application: bool) -> tuple[list[int], list[Optional[str]]]:
    """Hours of the day (and oral meal tags) for one day of dosing."""
    lowered = frequency.lower()
    if application:
        for keywords, hours in _APPLICATION_TIMES:
            if any(k in lowered for k in keywords):
                return hours, [None] * len(hours)
        logger.warning("Unrecognised application frequency '%s', defaulting to once a day.", frequency)
        return [8], [None]

    for keywords, hours, meals in _ORAL_TIMES:
        if any(k in lowered for k in keywords):
            return hours, meals
    logger.warning("Unrecognised oral frequency '%s', defaulting to once a day at breakfast.", frequency)
    return [8], ["breakfast"]


def build_schedules(
    medicine: Medicine,
    prescription: Prescription,
    user_id: str,
    start_date=None,
    end_date=None,
) -> list[MedicationSchedule]:
    """
    Compute (but do not persist) the dosing events for one medicine.

    Emits one event per (day, time-of-day) over ``duration`` days from the
    resolved start date, never past ``end_date`` when one is supplied.
    """
    if medicine.prescription_id != prescription.id:
        raise ValueError(
            f"Medicine {medicine.id} does not belong to prescription {prescription.id}."
        )

    start = resolve_start_date(start_date, prescription)
    num_days = resolve_duration_days(medicine)
    explicit_end = coerce_date(end_date)
    end = explicit_end or start + timedelta(days=num_days - 1)

    frequency = (medicine.frequency or "").strip()
    if not frequency:
        logger.warning("No frequency for medicine %s, defaulting to 'once a day'.", medicine.name)
        frequency = "once a day"

    if parse_frequency(frequency).pattern == PATTERN_PRN:
        logger.warning("Medicine %s is taken as needed; no fixed schedule generated.", medicine.name)
        return []

    if end < start:
        logger.warning(
            "End date %s precedes start date %s for medicine %s; no schedules generated.",
            end, start, medicine.name,
        )
        return []

    application = is_application_route(medicine)
    hours, meals = assign_daily_times(frequency, application)

    schedules = []
    for day in range(num_days):
        current = start + timedelta(days=day)
        if current > end:
            break
        for hour, meal in zip(hours, meals):
            schedules.append(MedicationSchedule(
                id=str(uuid.uuid4()),
                medicine_id=medicine.id,
                prescription_id=prescription.id,
                user_id=user_id,
                scheduled_time=datetime.combine(current, time(hour=hour)),
                frequency=medicine.frequency or frequency,
                start_date=start,
                end_date=end,
                is_active=True,
                meal_timing=meal,
            ))
    return schedules


def generate_medication_schedules(
    medicine: Medicine,
    prescription: Prescription,
    user_id: str,
    start_date=None,
    end_date=None,
) -> list[MedicationSchedule]:
    """
    Regenerate and persist the schedule of one medicine (full replace).
    Old events and their statuses are deleted in the same transaction that
    inserts the new ones. An empty result is valid, not a failure.
    """
    schedules = build_schedules(medicine, prescription, user_id, start_date, end_date)

    try:
        MedicationStatus.query.filter_by(medicine_id=medicine.id).delete(synchronize_session=False)
        MedicationSchedule.query.filter_by(medicine_id=medicine.id).delete(synchronize_session=False)
        db.session.add_all(schedules)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.error("Schedule replace failed for medicine %s.", medicine.id, exc_info=True)
        raise

    if not schedules:
        logger.warning(
            "No schedules generated for medicine %s in prescription %s.",
            medicine.name, prescription.id,
        )
    return schedules


def generate_for_prescription(prescription: Prescription, user_id: str, start_date=None, end_date=None):
    """Regenerate schedules for every medicine of a prescription."""
    schedules = []
    for medicine in list(prescription.medicines):
        schedules.extend(
            generate_medication_schedules(medicine, prescription, user_id, start_date, end_date)
        )
    logger.info(
        "Generated %d schedules for prescription %s (%d medicines).",
        len(schedules), prescription.id, len(prescription.medicines),
    )
    return schedules


def regenerate_for_medicine(medicine: Medicine) -> Optional[list[MedicationSchedule]]:
    """
    Rebuild an edited medicine's schedule from its previous start date.
    Returns None when the medicine never had a schedule.
    """
    previous = (
        MedicationSchedule.query
        .filter_by(medicine_id=medicine.id)
        .order_by(MedicationSchedule.start_date)
        .first()
    )
    if previous is None:
        return None
    return generate_medication_schedules(
        medicine, medicine.prescription, previous.user_id, previous.start_date
    )


def get_schedules_for_range(user_id: str, start: datetime, end: datetime, active_only=False):
    """Events of a user whose scheduled time falls in [start, end)."""
    query = MedicationSchedule.query.filter(
        MedicationSchedule.user_id == user_id,
        MedicationSchedule.scheduled_time >= start,
        MedicationSchedule.scheduled_time < end,
    )
    if active_only:
        query = query.filter(MedicationSchedule.is_active.is_(True))
    return query.order_by(MedicationSchedule.scheduled_time).all()


def get_active_schedules(user_id: str) -> list[MedicationSchedule]:
    return (
        MedicationSchedule.query
        .filter(MedicationSchedule.user_id == user_id, MedicationSchedule.is_active.is_(True))
        .order_by(MedicationSchedule.scheduled_time)
        .all()
    )


def update_meal_timing(schedule_id: str, meal_timing: str, user_id: str) -> Optional[MedicationSchedule]:
    """Retag one event without regenerating the schedule."""
    if meal_timing not in MEAL_TIMINGS:
        raise ValueError(f"Invalid meal timing '{meal_timing}'. Expected one of: {', '.join(MEAL_TIMINGS)}.")

    schedule = db.session.get(MedicationSchedule, schedule_id)
    if not schedule or schedule.user_id != user_id:
        return None
    schedule.meal_timing = meal_timing
    db.session.commit()
    return schedule
