"""
Timeline assembly – the per-day view of dosing events.

Joins a day's schedules with their medicines, prescriptions, recorded
statuses and detected conflicts, bucketed into 30-minute slots. The
result is request-scoped and never persisted.
"""

import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Optional

from dosewise.models.models import (
    MedicationSchedule,
    MedicationStatus,
    Medicine,
    Prescription,
)
from dosewise.services.conflict_service import Conflict, time_slot_key
from dosewise.services.schedule_service import coerce_date, day_bounds

logger = logging.getLogger("dosewise.timeline")


@dataclass
class TimelineFilters:
    """Optional narrowing of a day view; empty lists mean "no filter"."""
    prescription_ids: list[str] = field(default_factory=list)
    priority_levels: list[str] = field(default_factory=list)
    statuses: list[str] = field(default_factory=list)
    show_conflicts: bool = True


@dataclass
class SlotEntry:
    medicine: Medicine
    prescription: Prescription
    schedule: MedicationSchedule
    status: MedicationStatus

    def to_dict(self):
        return {
            "medicine": self.medicine.to_dict(),
            "prescription": self.prescription.to_dict(),
            "schedule": self.schedule.to_dict(),
            "status": self.status.to_dict(),
        }


@dataclass
class ScheduleSlot:
    key: str
    time: datetime
    medications: list[SlotEntry] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)

    @property
    def medicine_ids(self) -> set[str]:
        return {entry.medicine.id for entry in self.medications}

    def to_dict(self):
        return {
            "key": self.key,
            "time": self.time.isoformat(),
            "medications": [entry.to_dict() for entry in self.medications],
            "conflicts": [c.to_dict() for c in self.conflicts],
        }


@dataclass
class TimelineDay:
    date: date
    slots: list[ScheduleSlot] = field(default_factory=list)
    total_medications: int = 0
    completed_medications: int = 0
    missed_medications: int = 0

    def to_dict(self):
        return {
            "date": self.date.isoformat(),
            "slots": [slot.to_dict() for slot in self.slots],
            "total_medications": self.total_medications,
            "completed_medications": self.completed_medications,
            "missed_medications": self.missed_medications,
        }


def _latest_status_by_schedule(statuses: Iterable[MedicationStatus]) -> dict[str, MedicationStatus]:
    """Latest write per schedule id is authoritative."""
    latest = {}
    for status in statuses:
        current = latest.get(status.schedule_id)
        stamp = status.updated_at or status.created_at or datetime.min
        if current is None or stamp >= (current.updated_at or current.created_at or datetime.min):
            latest[status.schedule_id] = status
    return latest


def _placeholder_status(schedule: MedicationSchedule) -> MedicationStatus:
    """Transient "upcoming" status for an event nobody has acted on yet."""
    return MedicationStatus(
        id=str(uuid.uuid4()),
        schedule_id=schedule.id,
        medicine_id=schedule.medicine_id,
        prescription_id=schedule.prescription_id,
        user_id=schedule.user_id,
        scheduled_time=schedule.scheduled_time,
        status="upcoming",
    )


def assemble_timeline(
    schedules: Iterable[MedicationSchedule],
    medicines: Iterable[Medicine],
    prescriptions: Iterable[Prescription],
    statuses: Iterable[MedicationStatus],
    conflicts: Iterable[Conflict],
    target_date,
    filters: Optional[TimelineFilters] = None,
) -> TimelineDay:
    """
    Build the TimelineDay for ``target_date``.

    Counters: ``total_medications`` counts the day's active events;
    completed/missed count every supplied status row, so callers decide the
    adherence window by the statuses they pass in.
    """
    day = coerce_date(target_date)
    if day is None:
        raise ValueError(f"Invalid target date: {target_date!r}")
    filters = filters or TimelineFilters()
    statuses = list(statuses)

    day_start, day_end = day_bounds(day)
    day_schedules = [
        s for s in schedules
        if s.is_active and day_start <= s.scheduled_time < day_end
    ]

    medicines_by_id = {m.id: m for m in medicines}
    prescriptions_by_id = {p.id: p for p in prescriptions}
    status_by_schedule = _latest_status_by_schedule(statuses)

    slots: "OrderedDict[str, ScheduleSlot]" = OrderedDict()
    for schedule in sorted(day_schedules, key=lambda s: (s.scheduled_time, s.medicine_id)):
        if filters.prescription_ids and schedule.prescription_id not in filters.prescription_ids:
            continue

        medicine = medicines_by_id.get(schedule.medicine_id)
        prescription = prescriptions_by_id.get(schedule.prescription_id)
        if filters.priority_levels and (medicine is None or medicine.priority_level not in filters.priority_levels):
            continue

        status = status_by_schedule.get(schedule.id) or _placeholder_status(schedule)
        if filters.statuses and status.status not in filters.statuses:
            continue

        key = time_slot_key(schedule.scheduled_time)
        slot = slots.get(key)
        if slot is None:
            hour, minute = (int(part) for part in key.split(":"))
            slot = ScheduleSlot(key=key, time=day_start.replace(hour=hour, minute=minute))
            slots[key] = slot

        if medicine is None or prescription is None:
            logger.warning("Schedule %s references a missing medicine or prescription.", schedule.id)
            continue
        slot.medications.append(SlotEntry(medicine, prescription, schedule, status))

    if filters.show_conflicts:
        for conflict in conflicts:
            for slot in slots.values():
                if conflict.medicine_ids & slot.medicine_ids:
                    slot.conflicts.append(conflict)

    return TimelineDay(
        date=day,
        slots=sorted(slots.values(), key=lambda s: s.time),
        total_medications=len(day_schedules),
        completed_medications=sum(1 for s in statuses if s.status == "taken"),
        missed_medications=sum(1 for s in statuses if s.status == "missed"),
    )


def timeline_statistics(day: TimelineDay) -> dict:
    """Adherence counters for a day view."""
    total = day.total_medications
    completed = day.completed_medications
    missed = day.missed_medications
    return {
        "total": total,
        "completed": completed,
        "missed": missed,
        "upcoming": max(total - completed - missed, 0),
        "adherence_rate": round(completed / total * 100) if total else 0,
    }
