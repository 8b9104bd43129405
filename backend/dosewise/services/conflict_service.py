"""
Conflict detection service.

Conflicts are derived data: they are recomputed from the current schedules
and medicines on every request and never stored as ground truth. Two kinds
are detected:

  1. Timing conflicts – two different medicines dosed in the same
     30-minute slot with clashing food requirements, or with a critical
     medicine among them.
  2. Interaction conflicts – medicines matching a known interacting
     drug pair, regardless of when they are scheduled.

The detector is deterministic: conflict ids are derived from their content
and the output is sorted, so input order never changes the result.
"""

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from dosewise.models.models import MedicationSchedule, Medicine
from dosewise.services.frequency_parser import (
    NOTE_EMPTY_STOMACH,
    NOTE_WITH_FOOD,
    extract_timing_notes,
)

logger = logging.getLogger("dosewise.conflicts")

CONFLICT_TIMING = "timing"
CONFLICT_INTERACTION = "interaction"
CONFLICT_CONTRAINDICATION = "contraindication"

SEVERITY_ORDER = ("minor", "moderate", "severe", "critical")

_CONFLICT_NAMESPACE = uuid.UUID("6f1c2a8e-4b7d-4c1e-9a55-0d7e3b9f2c41")

# ── Known interacting drug pairs (lower-case name fragments) ──
KNOWN_INTERACTIONS = [
    {
        "drugs": ("warfarin", "aspirin"),
        "severity": "severe",
        "description": "Increased risk of bleeding when taken together",
    },
    {
        "drugs": ("simvastatin", "amiodarone"),
        "severity": "moderate",
        "description": "May increase risk of muscle damage",
    },
    {
        "drugs": ("warfarin", "ibuprofen"),
        "severity": "severe",
        "description": "Increased bleeding risk and potential INR elevation",
    },
    {
        "drugs": ("clopidogrel", "omeprazole"),
        "severity": "moderate",
        "description": "Omeprazole may reduce the antiplatelet effect of clopidogrel",
    },
    {
        "drugs": ("sildenafil", "nitroglycerin"),
        "severity": "critical",
        "description": "Risk of severe, potentially fatal drop in blood pressure",
    },
    {
        "drugs": ("lisinopril", "spironolactone"),
        "severity": "moderate",
        "description": "Increased risk of high potassium levels",
    },
]

INTERACTION_RESOLUTION = "Consult your doctor before taking these medications together"
FOOD_CLASH_RESOLUTION = "Consider spacing these medications by at least 2 hours"
CRITICAL_RESOLUTION = "Consult your doctor immediately to resolve this conflict"


@dataclass
class Conflict:
    """A detected issue between exactly two distinct medicines."""
    id: str
    user_id: str
    medicine_id_1: str
    medicine_id_2: str
    conflict_type: str
    severity: str
    description: str
    suggested_resolution: Optional[str] = None
    is_resolved: bool = False

    @property
    def medicine_ids(self) -> set[str]:
        return {self.medicine_id_1, self.medicine_id_2}

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "medicine_id_1": self.medicine_id_1,
            "medicine_id_2": self.medicine_id_2,
            "conflict_type": self.conflict_type,
            "severity": self.severity,
            "description": self.description,
            "suggested_resolution": self.suggested_resolution,
            "is_resolved": self.is_resolved,
        }


def time_slot_key(moment: datetime) -> str:
    """Hour plus minute rounded down to the half hour, e.g. "08:30"."""
    return f"{moment.hour:02d}:{(moment.minute // 30) * 30:02d}"


def _make_conflict(user_id, conflict_type, med_a: Medicine, med_b: Medicine, severity, description, resolution):
    first, second = sorted((med_a, med_b), key=lambda m: m.id)
    conflict_id = uuid.uuid5(_CONFLICT_NAMESPACE, f"{user_id}:{conflict_type}:{first.id}:{second.id}")
    return Conflict(
        id=str(conflict_id),
        user_id=user_id,
        medicine_id_1=first.id,
        medicine_id_2=second.id,
        conflict_type=conflict_type,
        severity=severity,
        description=description.format(first=first.name, second=second.name),
        suggested_resolution=resolution,
    )


def has_food_requirement_clash(med_a: Medicine, med_b: Medicine) -> bool:
    notes_a = extract_timing_notes(med_a.timing_instructions)
    notes_b = extract_timing_notes(med_b.timing_instructions)
    return (
        (NOTE_WITH_FOOD in notes_a and NOTE_EMPTY_STOMACH in notes_b)
        or (NOTE_WITH_FOOD in notes_b and NOTE_EMPTY_STOMACH in notes_a)
    )


def check_timing_pair(user_id: str, med_a: Medicine, med_b: Medicine) -> Optional[Conflict]:
    """Apply the food-clash rule, then the critical-priority rule, to one pair."""
    if has_food_requirement_clash(med_a, med_b):
        return _make_conflict(
            user_id, CONFLICT_TIMING, med_a, med_b, "moderate",
            "Food requirement conflict: {first} and {second} have conflicting food requirements",
            FOOD_CLASH_RESOLUTION,
        )
    if "critical" in ((med_a.priority_level or "").lower(), (med_b.priority_level or "").lower()):
        return _make_conflict(
            user_id, CONFLICT_TIMING, med_a, med_b, "severe",
            "Critical medication timing conflict: {first} and {second} are scheduled at the same time",
            CRITICAL_RESOLUTION,
        )
    return None


def detect_timing_conflicts(
    schedules: Iterable[MedicationSchedule],
    medicines_by_id: dict[str, Medicine],
    user_id: str,
) -> list[Conflict]:
    """Pairwise check of different medicines sharing a 30-minute slot."""
    slots = defaultdict(set)
    for schedule in schedules:
        slots[time_slot_key(schedule.scheduled_time)].add(schedule.medicine_id)

    conflicts = {}
    checked = set()
    for slot_key in sorted(slots):
        medicine_ids = sorted(mid for mid in slots[slot_key] if mid in medicines_by_id)
        for i, first_id in enumerate(medicine_ids):
            for second_id in medicine_ids[i + 1:]:
                pair = (first_id, second_id)
                if pair in checked:
                    continue
                checked.add(pair)
                conflict = check_timing_pair(user_id, medicines_by_id[first_id], medicines_by_id[second_id])
                if conflict:
                    conflicts[conflict.id] = conflict
    return list(conflicts.values())


def _matches(medicine: Medicine, fragment: str) -> bool:
    return fragment in (medicine.name or "").lower() or fragment in (medicine.generic_name or "").lower()


def detect_interactions(medicines: Iterable[Medicine], user_id: str) -> list[Conflict]:
    """Scan medicines against the static interaction table."""
    ordered = sorted(medicines, key=lambda m: m.id)
    conflicts = {}
    for entry in KNOWN_INTERACTIONS:
        drug_a, drug_b = entry["drugs"]
        pair = next(
            (
                (first, second)
                for first in ordered if _matches(first, drug_a)
                for second in ordered if second.id != first.id and _matches(second, drug_b)
            ),
            None,
        )
        if pair is None:
            continue
        first, second = pair
        conflict = _make_conflict(
            user_id, CONFLICT_INTERACTION, first, second,
            entry["severity"], entry["description"], INTERACTION_RESOLUTION,
        )
        # One interaction per medicine pair; the first table entry wins.
        conflicts.setdefault(conflict.id, conflict)
    return list(conflicts.values())


def detect_conflicts(
    schedules: Iterable[MedicationSchedule],
    medicines: Iterable[Medicine],
    user_id: str = "",
) -> list[Conflict]:
    """
    Full detection pass over a user's schedules and medicines.
    Returns conflicts sorted by descending severity, then type and ids.
    """
    medicines = list(medicines)
    medicines_by_id = {m.id: m for m in medicines}

    conflicts = detect_timing_conflicts(schedules, medicines_by_id, user_id)
    conflicts.extend(detect_interactions(medicines, user_id))

    conflicts.sort(key=lambda c: (
        -SEVERITY_ORDER.index(c.severity),
        c.conflict_type,
        c.medicine_id_1,
        c.medicine_id_2,
    ))
    logger.debug("Detected %d conflicts for user %s.", len(conflicts), user_id or "<none>")
    return conflicts
