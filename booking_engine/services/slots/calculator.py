# booking_engine/services/slots/calculator.py
"""
Slot generation: candidate intervals for a service on a day.

Pure functions only. Inputs are the business-hour intervals for the day
(after tenant overrides), the service timing and the config.

Contains:
✓ business hours and tenant overrides (via intervals)
✓ service duration and buffers
✓ min_advance_minutes / past times

Does NOT contain:
✗ Bookings (Conflict Resolver)
✗ Staff schedules and time off (Conflict Resolver)
✗ Travel (Travel-Time Adjuster)
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from ...exceptions import ValidationError
from .config import BookingConfig, get_booking_config
from .schedule import Interval, apply_overrides, day_intervals, parse_schedule


@dataclass(frozen=True)
class CandidateSlot:
    """
    A bookable start time.

    start/end is the customer-facing service time; occupied_start/occupied_end
    adds the service buffers and is what conflict checks use.
    """
    start: datetime
    end: datetime
    occupied_start: datetime
    occupied_end: datetime


def build_candidate(service, start: datetime) -> CandidateSlot:
    """Candidate for a service starting at `start`."""
    end = start + timedelta(minutes=service.duration_min)
    return CandidateSlot(
        start=start,
        end=end,
        occupied_start=start - timedelta(minutes=service.buffer_before_min or 0),
        occupied_end=end + timedelta(minutes=service.buffer_after_min or 0),
    )


def generate_slots(
    intervals: list[Interval],
    service,
    target_date: date,
    config: BookingConfig | None = None,
    now: datetime | None = None,
) -> list[CandidateSlot]:
    """
    Generate candidate slots for a service on target_date.

    Each interval is stepped from its opening time by slot_step_minutes;
    a start is kept when the service fits before closing. Starts earlier
    than now + min_advance_minutes are dropped.

    Returns:
        Candidates ordered by start. Empty list = closed day or no fit.
    """
    config = config or get_booking_config()
    duration = service.duration_min
    if not duration or duration <= 0:
        raise ValidationError("Service duration must be positive", service_id=getattr(service, "id", None))

    day_start = datetime.combine(target_date, datetime.min.time())
    earliest = None
    if now is not None:
        earliest = now + timedelta(minutes=config.min_advance_minutes)

    step = config.slot_step_minutes
    slots: list[CandidateSlot] = []

    for open_min, close_min in sorted(intervals):
        t = open_min
        while t + duration <= close_min:
            start = day_start + timedelta(minutes=t)
            if earliest is None or start >= earliest:
                slots.append(build_candidate(service, start))
            t += step

    slots.sort(key=lambda s: s.start)
    return slots


def tenant_day_intervals(
    work_schedule,
    overrides: list,
    target_date: date,
) -> list[Interval]:
    """Business hours for target_date with tenant-level overrides applied."""
    intervals = day_intervals(parse_schedule(work_schedule), target_date)
    return apply_overrides(intervals, overrides, replace_hours=True)


def is_generated_start(
    intervals: list[Interval],
    service,
    start: datetime,
    config: BookingConfig,
) -> bool:
    """True when `start` is one of the grid starts generate_slots would emit (ignoring now)."""
    if start.second or start.microsecond:
        return False
    minute = start.hour * 60 + start.minute
    for open_min, close_min in intervals:
        if open_min <= minute and minute + service.duration_min <= close_min:
            if (minute - open_min) % config.slot_step_minutes == 0:
                return True
    return False
