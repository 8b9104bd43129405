"""
Frequency parser – turns free-text dosing frequencies into a structured pattern.

The source text is AI-extracted from prescription documents and of
unpredictable quality, so the parser is total: an ordered list of
(matcher, builder) rules is tried in sequence and the last rule always
matches.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

logger = logging.getLogger("dosewise.frequency")

# ── Patterns ──
PATTERN_BID = "BID"
PATTERN_TID = "TID"
PATTERN_QID = "QID"
PATTERN_QD = "QD"
PATTERN_PRN = "PRN"
PATTERN_INTERVAL = "interval"
PATTERN_CUSTOM = "custom"

# ── Timing notes ──
NOTE_WITH_FOOD = "with_food"
NOTE_EMPTY_STOMACH = "empty_stomach"
NOTE_BEDTIME = "bedtime"
NOTE_MORNING = "morning"

_NOTE_KEYWORDS = [
    (NOTE_WITH_FOOD, ("with food", "after meal")),
    (NOTE_EMPTY_STOMACH, ("empty stomach", "before meal")),
    (NOTE_BEDTIME, ("bedtime", "at night")),
    (NOTE_MORNING, ("morning",)),
]

_INTERVAL_RE = re.compile(r"(?:every|each)\s+(\d+)\s+(?:hour|hr)s?", re.IGNORECASE)
_CLOCK_TIME_RE = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*(am|pm)\b", re.IGNORECASE)

# Day-part keywords → 24h clock time
_DAY_PART_TIMES = [
    (("morning",), "08:00"),
    (("evening",), "18:00"),
    (("bedtime", "night"), "21:00"),
]

# Hours between doses for the fixed-cadence patterns
_CADENCE_HOURS = {
    PATTERN_BID: 12,
    PATTERN_TID: 8,
    PATTERN_QID: 6,
    PATTERN_QD: 24,
}


@dataclass
class ParsedFrequency:
    """Structured dosing pattern derived from a frequency string."""
    pattern: str
    times_per_day: int
    interval_hours: Optional[int] = None
    explicit_times: list[str] = field(default_factory=list)   # "HH:MM", 24h
    note: Optional[str] = None
    timing_notes: list[str] = field(default_factory=list)

    def to_dict(self):
        return {
            "pattern": self.pattern,
            "times_per_day": self.times_per_day,
            "interval_hours": self.interval_hours,
            "explicit_times": self.explicit_times,
            "note": self.note,
            "timing_notes": self.timing_notes,
        }


def extract_timing_notes(text: Optional[str]) -> list[str]:
    """Detect food / time-of-day side notes in any free-text instruction."""
    lowered = (text or "").lower()
    return [
        note for note, keywords in _NOTE_KEYWORDS
        if any(k in lowered for k in keywords)
    ]


def extract_explicit_times(text: str) -> list[str]:
    """Return clock times ("8 AM", "8:30 PM") and day-part keywords as HH:MM."""
    times = []
    for hour_s, minute_s, period in _CLOCK_TIME_RE.findall(text):
        hour = int(hour_s)
        minute = int(minute_s) if minute_s else 0
        if not (1 <= hour <= 12) or minute > 59:
            continue
        period = period.lower()
        if period == "pm" and hour != 12:
            hour += 12
        elif period == "am" and hour == 12:
            hour = 0
        times.append(f"{hour:02d}:{minute:02d}")

    lowered = text.lower()
    for keywords, clock in _DAY_PART_TIMES:
        if any(k in lowered for k in keywords):
            times.append(clock)

    # Keep first occurrence order, drop repeats
    return list(dict.fromkeys(times))


def _contains_any(*keywords: str) -> Callable[[str], bool]:
    return lambda text: any(k in text for k in keywords)


def _fixed(pattern: str, times_per_day: int) -> Callable[[str, str], ParsedFrequency]:
    return lambda lowered, original: ParsedFrequency(pattern=pattern, times_per_day=times_per_day)


def _interval_hours(text: str) -> Optional[int]:
    match = _INTERVAL_RE.search(text)
    if not match:
        return None
    hours = int(match.group(1))
    return hours if hours > 0 else None


def _build_interval(lowered: str, original: str) -> ParsedFrequency:
    hours = _interval_hours(lowered)
    return ParsedFrequency(
        pattern=PATTERN_INTERVAL,
        times_per_day=24 // hours,
        interval_hours=hours,
    )


def _build_custom_times(lowered: str, original: str) -> ParsedFrequency:
    times = extract_explicit_times(original)
    return ParsedFrequency(pattern=PATTERN_CUSTOM, times_per_day=len(times), explicit_times=times)


def _build_fallback(lowered: str, original: str) -> ParsedFrequency:
    return ParsedFrequency(pattern=PATTERN_CUSTOM, times_per_day=1, note=original)


# Order matters: "twice daily" must hit BID before the bare "daily" of QD.
FREQUENCY_RULES = [
    (_contains_any("bid", "twice daily", "2x daily"), _fixed(PATTERN_BID, 2)),
    (_contains_any("tid", "three times daily", "3x daily"), _fixed(PATTERN_TID, 3)),
    (_contains_any("qid", "four times daily", "4x daily"), _fixed(PATTERN_QID, 4)),
    (_contains_any("qd", "once daily", "daily", "1x daily"), _fixed(PATTERN_QD, 1)),
    (_contains_any("prn", "as needed", "when needed"), _fixed(PATTERN_PRN, 0)),
    (lambda text: _interval_hours(text) is not None, _build_interval),
    (lambda text: bool(extract_explicit_times(text)), _build_custom_times),
    (lambda text: True, _build_fallback),
]


def parse_frequency(frequency_text: Optional[str]) -> ParsedFrequency:
    """
    Parse a free-text frequency into a ParsedFrequency.
    Never raises; unrecognised text yields a once-daily custom pattern
    carrying the original text as its note.
    """
    original = (frequency_text or "").strip()
    lowered = original.lower()

    for matches, build in FREQUENCY_RULES:
        if matches(lowered):
            parsed = build(lowered, original)
            break

    if parsed.note is not None:
        logger.debug("Unrecognised frequency '%s', using once-daily fallback.", original)
    parsed.timing_notes = extract_timing_notes(original)
    return parsed


def calculate_next_dose(frequency_text: Optional[str], last_taken: Optional[datetime]) -> Optional[datetime]:
    """Next dose instant after ``last_taken`` for fixed-cadence patterns, else None."""
    if last_taken is None:
        return None

    parsed = parse_frequency(frequency_text)
    if parsed.pattern == PATTERN_INTERVAL:
        return last_taken + timedelta(hours=parsed.interval_hours)
    hours = _CADENCE_HOURS.get(parsed.pattern)
    if hours is None:
        return None
    return last_taken + timedelta(hours=hours)
