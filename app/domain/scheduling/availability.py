"""
Counselor time-slot calculator.

Counselor availability is stored in two legacy shapes:

    availability: [{"day": "Monday", "slots": [{"startTime": "09:00", "endTime": "12:00"}]}]
    schedule:     [{"dayOfWeek": "Monday", "isAvailable": true, "startTime": "09:00", "endTime": "17:00"}]

Both are parsed into WeeklySlots / SingleWindow and resolved with one rule:
a WeeklySlots entry for the day wins, SingleWindow entries are the fallback.
Everything here is pure; the service supplies bookings and the current time.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Optional, Union

from ...shared.validators import format_hhmm, parse_hhmm

logger = logging.getLogger(__name__)

SLOT_INTERVAL_MINUTES = 30
DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


@dataclass
class TimeWindow:
    start: int  # minutes since midnight
    end: int


@dataclass
class WeeklySlots:
    day: str
    slots: list[TimeWindow] = field(default_factory=list)


@dataclass
class SingleWindow:
    day_of_week: str
    is_available: bool
    window: TimeWindow


AvailabilitySource = Union[WeeklySlots, SingleWindow]


@dataclass
class Booking:
    start: int
    duration: int

    @property
    def end(self) -> int:
        return self.start + self.duration


@dataclass
class AvailabilityResult:
    day_of_week: str
    slots: list[dict]
    message: str


def day_name(target_date: date) -> str:
    return DAY_NAMES[target_date.weekday()]


def _parse_window(start: Optional[str], end: Optional[str]) -> Optional[TimeWindow]:
    try:
        return TimeWindow(start=parse_hhmm(start), end=parse_hhmm(end))
    except (AttributeError, TypeError, ValueError):
        logger.debug(f"Skipping availability window with invalid times: {start}-{end}")
        return None


def parse_sources(availability: Optional[list], schedule: Optional[list]) -> list[AvailabilitySource]:
    """Convert the raw JSON columns into typed sources, skipping malformed entries"""
    sources: list[AvailabilitySource] = []

    for entry in availability or []:
        if not isinstance(entry, dict) or not isinstance(entry.get("day"), str):
            continue
        windows = []
        for slot in entry.get("slots") or []:
            if not isinstance(slot, dict):
                continue
            window = _parse_window(slot.get("startTime"), slot.get("endTime"))
            if window:
                windows.append(window)
        sources.append(WeeklySlots(day=entry["day"], slots=windows))

    for entry in schedule or []:
        if not isinstance(entry, dict) or not isinstance(entry.get("dayOfWeek"), str):
            continue
        window = _parse_window(entry.get("startTime"), entry.get("endTime"))
        if window:
            sources.append(
                SingleWindow(
                    day_of_week=entry["dayOfWeek"],
                    is_available=bool(entry.get("isAvailable")),
                    window=window,
                )
            )

    return sources


def resolve_windows(sources: Iterable[AvailabilitySource], day: str) -> list[TimeWindow]:
    """Raw windows for a weekday: WeeklySlots first, SingleWindow as fallback"""
    sources = list(sources)
    day_key = day.lower()

    for source in sources:
        if isinstance(source, WeeklySlots) and source.day.lower() == day_key and source.slots:
            return list(source.slots)

    return [
        source.window
        for source in sources
        if isinstance(source, SingleWindow)
        and source.day_of_week.lower() == day_key
        and source.is_available
    ]


def generate_candidate_slots(windows: Iterable[TimeWindow]) -> list[int]:
    """Start times every 30 minutes; a start is emitted only if a full step fits in the window"""
    candidates = []
    for window in windows:
        current = window.start
        while current + SLOT_INTERVAL_MINUTES <= window.end:
            candidates.append(current)
            current += SLOT_INTERVAL_MINUTES
    return candidates


def filter_booked(candidates: Iterable[int], duration: int, bookings: Iterable[Booking]) -> list[int]:
    """Drop candidates whose [start, start+duration) overlaps any booking"""
    bookings = list(bookings)
    return [
        start
        for start in candidates
        if not any(start < booking.end and start + duration > booking.start for booking in bookings)
    ]


def filter_past(candidates: Iterable[int], target_date: date, now: datetime) -> list[int]:
    """On the current day, drop candidates at or before the current local time"""
    if target_date != now.date():
        return list(candidates)
    current_minutes = now.hour * 60 + now.minute
    return [start for start in candidates if start > current_minutes]


def calculate_available_slots(
    sources: Iterable[AvailabilitySource],
    target_date: date,
    duration: int,
    bookings: Iterable[Booking],
    now: datetime,
) -> AvailabilityResult:
    day = day_name(target_date)
    windows = resolve_windows(sources, day)
    if not windows:
        return AvailabilityResult(
            day_of_week=day, slots=[], message=f"Counselor is not available on {day}"
        )

    candidates = generate_candidate_slots(windows)
    candidates = filter_booked(candidates, duration, bookings)
    candidates = filter_past(candidates, target_date, now)

    slots = [
        {"time": format_hhmm(start), "duration": duration, "available": True}
        for start in candidates
    ]
    message = "Available time slots retrieved" if slots else "No available time slots for this date"
    return AvailabilityResult(day_of_week=day, slots=slots, message=message)
