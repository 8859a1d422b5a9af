# booking_engine/services/slots/conflicts.py
"""
Conflict detection shared by the availability read path and the
reservation write path.

Intervals are half-open: [start, end). A booking ending at 10:00 does not
conflict with one starting at 10:00. Only pending/confirmed bookings block.

Bookings and candidates are duck-typed: anything with occupied_start,
occupied_end (and status, for bookings) works.
"""

from datetime import datetime

from .calculator import CandidateSlot
from .schedule import Interval

ACTIVE_STATUSES = ("pending", "confirmed")

REASON_CONFLICT = "conflict"
REASON_STAFF_UNAVAILABLE = "staff_unavailable"


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open interval overlap."""
    return a_start < b_end and b_start < a_end


def is_active(booking) -> bool:
    return booking.status in ACTIVE_STATUSES


def peak_concurrency(
    windows: list[tuple[datetime, datetime]],
    window_start: datetime,
    window_end: datetime,
) -> int:
    """
    Maximum number of windows active at the same instant inside
    [window_start, window_end).
    """
    events: list[tuple[datetime, int]] = []
    for start, end in windows:
        start = max(start, window_start)
        end = min(end, window_end)
        if start < end:
            events.append((start, 1))
            events.append((end, -1))

    # At equal instants ends sort before starts (half-open)
    events.sort()
    peak = current = 0
    for _, delta in events:
        current += delta
        peak = max(peak, current)
    return peak


def find_conflicts(candidate, bookings: list, capacity: int = 1) -> list:
    """
    Return the active bookings that make `candidate` unavailable.

    capacity == 1 (a staff member, or a single-slot pool): any overlap
    conflicts. capacity > 1 (unassigned pool): the candidate conflicts
    only when the overlapping bookings reach `capacity` at some instant
    of the candidate interval.
    """
    overlapping = [
        b for b in bookings
        if is_active(b) and overlaps(
            candidate.occupied_start, candidate.occupied_end,
            b.occupied_start, b.occupied_end,
        )
    ]
    if capacity <= 1 or not overlapping:
        return overlapping

    peak = peak_concurrency(
        [(b.occupied_start, b.occupied_end) for b in overlapping],
        candidate.occupied_start,
        candidate.occupied_end,
    )
    return overlapping if peak >= capacity else []


def within_intervals(candidate: CandidateSlot, intervals: list[Interval]) -> bool:
    """True when the service time [start, end) lies inside one working interval."""
    start_min = candidate.start.hour * 60 + candidate.start.minute
    end_min = start_min + int((candidate.end - candidate.start).total_seconds() // 60)
    return any(open_min <= start_min and end_min <= close_min for open_min, close_min in intervals)


def unavailable_reason(
    candidate: CandidateSlot,
    bookings: list,
    capacity: int = 1,
    staff_intervals: list[Interval] | None = None,
) -> str | None:
    """Why a candidate is not bookable, or None when it is free."""
    if staff_intervals is not None and not within_intervals(candidate, staff_intervals):
        return REASON_STAFF_UNAVAILABLE
    if find_conflicts(candidate, bookings, capacity):
        return REASON_CONFLICT
    return None


def filter_available(
    candidates: list[CandidateSlot],
    bookings: list,
    capacity: int = 1,
    staff_intervals: list[Interval] | None = None,
) -> list[CandidateSlot]:
    """Subset of candidates that are free, order preserved."""
    return [
        c for c in candidates
        if unavailable_reason(c, bookings, capacity, staff_intervals) is None
    ]
