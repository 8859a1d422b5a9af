# booking_engine/services/slots/schedule.py
"""
Work schedule parsing and calendar overrides.

Schedules are stored as JSON text in one of two formats:

  Format A (named keys):   {"mon": {"start": "09:00", "end": "18:00"}, "sun": null}
                           {"mon": [["09:00", "13:00"], ["14:00", "18:00"]]}
  Format B (numeric keys): {"0": [["09:00", "18:00"]], "6": []}

Intervals are returned as (start_minute, end_minute) pairs, sorted.
"""

import json
import logging
from datetime import date

from .config import time_str_to_minutes

logger = logging.getLogger(__name__)

DAY_NAMES = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]

CLOSING_KINDS = ("day_off", "block")

Interval = tuple[int, int]


def parse_schedule(raw) -> dict:
    """Load a schedule from JSON text (or pass a dict through)."""
    if isinstance(raw, dict):
        return raw
    try:
        schedule = json.loads(raw) if raw else {}
    except json.JSONDecodeError:
        logger.warning(f"Unparseable work schedule: {raw!r}")
        return {}
    return schedule if isinstance(schedule, dict) else {}


def day_intervals(schedule: dict, target_date: date) -> list[Interval]:
    """
    Extract working intervals for target_date from schedule.
    Supports both Format A and Format B. Empty list = closed.
    """
    weekday = target_date.weekday()  # 0 = Monday, 6 = Sunday

    raw: list = []
    weekday_str = str(weekday)
    if weekday_str in schedule:
        val = schedule[weekday_str]
        if isinstance(val, list):
            raw = val
    else:
        val = schedule.get(DAY_NAMES[weekday])
        if isinstance(val, dict):
            start = val.get("start")
            end = val.get("end")
            if start and end:
                raw = [[start, end]]
        elif isinstance(val, list):
            raw = val

    intervals: list[Interval] = []
    for item in raw:
        if not isinstance(item, (list, tuple)) or len(item) != 2:
            continue
        try:
            start_min = time_str_to_minutes(item[0])
            end_min = time_str_to_minutes(item[1])
        except (ValueError, AttributeError):
            logger.warning(f"Skipping malformed interval {item!r}")
            continue
        if start_min < end_min:
            intervals.append((start_min, end_min))

    return merge_intervals(intervals)


def merge_intervals(intervals: list[Interval]) -> list[Interval]:
    """Sort and merge overlapping or touching intervals."""
    merged: list[Interval] = []
    for start, end in sorted(intervals):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def intersect_intervals(a: list[Interval], b: list[Interval]) -> list[Interval]:
    """Intersection of two sorted interval lists."""
    result: list[Interval] = []
    i = j = 0
    while i < len(a) and j < len(b):
        start = max(a[i][0], b[j][0])
        end = min(a[i][1], b[j][1])
        if start < end:
            result.append((start, end))
        if a[i][1] < b[j][1]:
            i += 1
        else:
            j += 1
    return result


def parse_custom_hours(reason: str | None) -> Interval | None:
    """Read custom hours from an override reason, e.g. "10:00-15:00"."""
    if not reason or "-" not in reason:
        return None
    parts = reason.split("-")
    if len(parts) != 2 or ":" not in parts[0] or ":" not in parts[1]:
        return None
    try:
        start_min = time_str_to_minutes(parts[0])
        end_min = time_str_to_minutes(parts[1])
    except ValueError:
        return None
    if start_min >= end_min:
        return None
    return start_min, end_min


def apply_overrides(
    intervals: list[Interval],
    overrides: list,
    replace_hours: bool,
) -> list[Interval]:
    """
    Apply calendar overrides covering the day.

    - day_off / block closes the day
    - custom hours in reason replace the day's hours (tenant level) or
      restrict them (staff level)
    - any other override without readable hours closes the day
    """
    if not overrides:
        return intervals

    custom: Interval | None = None
    for ovr in overrides:
        if ovr.override_kind in CLOSING_KINDS:
            return []
        custom = custom or parse_custom_hours(ovr.reason)

    if custom is None:
        return []
    if replace_hours:
        return [custom]
    return intersect_intervals(intervals, [custom])


def staff_day_intervals(
    staff_schedule,
    business_intervals: list[Interval],
    target_date: date,
) -> list[Interval]:
    """Staff hours for the day; an empty schedule follows business hours."""
    schedule = parse_schedule(staff_schedule)
    if not schedule:
        return list(business_intervals)
    return day_intervals(schedule, target_date)
