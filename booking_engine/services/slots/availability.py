# booking_engine/services/slots/availability.py
"""
Availability for a service (optionally a staff member) on a day.

Data flow:
  business hours + tenant overrides → generate_slots (candidates)
  → staff hours / time off and existing bookings (conflicts)
  → home-visit travel feasibility and surcharge (travel)

Reads committed state only; no locks are taken and nothing is held for
the caller. The reservation path re-checks everything.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from ...exceptions import ValidationError
from .. import booking_repository as repo
from .calculator import generate_slots, tenant_day_intervals
from .config import BookingConfig, get_booking_config
from .conflicts import unavailable_reason
from .schedule import apply_overrides, staff_day_intervals
from .travel import (
    GeoPoint,
    HaversineTravelEstimator,
    ServiceAreaRule,
    TravelEstimator,
    adjust_for_travel,
    find_service_area,
)

logger = logging.getLogger(__name__)

REASON_QUOTA = "home_visit_quota"
REASON_STAFF_QUOTA = "staff_daily_quota"
REASON_FULL_DAY = "full_day_booked"


@dataclass(frozen=True)
class Slot:
    """Computed, never stored."""
    start: datetime
    end: datetime
    available: bool
    travel_surcharge_amount: float = 0.0
    within_service_area: bool = True
    reason: str | None = None


# ── Clock and validation helpers ─────────────────────────────────────────


def tenant_zone(tenant) -> ZoneInfo:
    try:
        return ZoneInfo(tenant.timezone or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Tenant {tenant.id}: unknown timezone {tenant.timezone!r}, using UTC")
        return ZoneInfo("UTC")


def tenant_now(tenant) -> datetime:
    """Current tenant-local wall-clock time (naive)."""
    return datetime.now(tenant_zone(tenant)).replace(tzinfo=None)


def to_tenant_local(value: datetime, tenant) -> datetime:
    """Naive datetimes are already tenant-local; aware ones are converted."""
    if value.tzinfo is None:
        return value
    return value.astimezone(tenant_zone(tenant)).replace(tzinfo=None)


def validate_booking_date(target_date: date, today: date, config: BookingConfig) -> None:
    if target_date < today:
        raise ValidationError("Date cannot be in the past", date=target_date.isoformat())
    if target_date > today + timedelta(days=config.horizon_days):
        raise ValidationError(
            f"Date cannot be more than {config.horizon_days} days ahead",
            date=target_date.isoformat(),
        )


def staff_intervals_for(db: Session, tenant_id: int, staff, business_intervals, target_date: date):
    """Staff working intervals for the day, time off applied."""
    intervals = staff_day_intervals(staff.work_schedule, business_intervals, target_date)
    overrides = repo.get_overrides(db, tenant_id, "staff", target_date, target_id=staff.id)
    return apply_overrides(intervals, overrides, replace_hours=False)


def load_area_rules(db: Session, tenant_id: int) -> list[ServiceAreaRule]:
    return [ServiceAreaRule.from_row(row) for row in repo.get_service_areas(db, tenant_id)]


def tenant_base(tenant) -> GeoPoint | None:
    if tenant.base_lat is None or tenant.base_lng is None:
        return None
    return GeoPoint(tenant.base_lat, tenant.base_lng)


def full_day_start(business_intervals, target_date: date) -> datetime | None:
    """The single full-day home-visit slot starts at the day's opening time."""
    if not business_intervals:
        return None
    return datetime.combine(target_date, datetime.min.time()) + timedelta(minutes=business_intervals[0][0])


def travel_timeline(timeline: list, capacity: int) -> list:
    """Commitments that constrain travel; a pool with several units has no single route."""
    return timeline if capacity == 1 else []


def staff_quota_reached(db: Session, tenant_id: int, staff, service, target_date: date) -> bool:
    quota = service.daily_quota_per_staff
    if staff is None or not quota:
        return False
    return repo.count_bookings_on(db, tenant_id, target_date, staff_id=staff.id) >= quota


def default_estimator(config: BookingConfig) -> TravelEstimator:
    return HaversineTravelEstimator(
        minutes_per_km=config.travel_minutes_per_km,
        fixed_minutes=config.travel_fixed_minutes,
    )


# ── Main entry ───────────────────────────────────────────────────────────


def get_availability(
    db: Session,
    tenant_id: int,
    service_id: int,
    target_date: date,
    staff_id: int | None = None,
    location: GeoPoint | None = None,
    include_unavailable: bool = False,
    estimator: TravelEstimator | None = None,
    config: BookingConfig | None = None,
    now: datetime | None = None,
) -> dict:
    """
    Calculate slots for a service on target_date.

    Returns:
        Dict for AvailabilityResponse; `slots` holds only bookable slots
        unless include_unavailable is set.
    """
    with repo.store_errors(db):
        tenant = repo.get_tenant(db, tenant_id)
        config = (config or get_booking_config()).for_tenant(tenant)
        service = repo.get_service(db, tenant_id, service_id)
        staff = repo.get_staff(db, tenant_id, staff_id, service_id) if staff_id is not None else None

        if location is not None:
            if not service.home_visit_available:
                raise ValidationError("Service is not available as a home visit", service_id=service_id)
            if not location.is_valid():
                raise ValidationError("Invalid coordinates", lat=location.lat, lng=location.lng)

        now = now or tenant_now(tenant)
        validate_booking_date(target_date, now.date(), config)

        result = {
            "tenant_id": tenant_id,
            "service_id": service_id,
            "staff_id": staff_id,
            "date": target_date,
            "slot_step_minutes": config.slot_step_minutes,
            "service_duration_min": service.duration_min,
            "slots": [],
        }

        # Step 1: Candidates from business hours
        overrides = repo.get_overrides(db, tenant_id, "tenant", target_date)
        business = tenant_day_intervals(tenant.work_schedule, overrides, target_date)
        candidates = generate_slots(business, service, target_date, config, now)
        if not candidates:
            return result

        # Step 2: Staff hours and existing bookings
        staff_intervals = None
        if staff is not None:
            staff_intervals = staff_intervals_for(db, tenant_id, staff, business, target_date)
            capacity = 1
        else:
            capacity = config.capacity_for(service)
        timeline = repo.day_timeline(db, tenant_id, target_date, staff_id=staff_id, service_id=service_id)
        staff_full = staff_quota_reached(db, tenant_id, staff, service, target_date)

        # Step 3: Home-visit context
        area = None
        quota_reached = False
        day_taken = False
        full_day = location is not None and service.home_visit_full_day
        if full_day:
            opening = full_day_start(business, target_date)
            candidates = [c for c in candidates if c.start == opening]
            day_taken = repo.count_bookings_on(
                db, tenant_id, target_date, staff_id=staff_id, service_id=service_id
            ) > 0
        if location is not None:
            area = find_service_area(location, load_area_rules(db, tenant_id), service_id)
            quota = tenant.home_visit_daily_quota
            if quota is not None and repo.count_home_visits(db, tenant_id, target_date) >= quota:
                quota_reached = True
            estimator = estimator or default_estimator(config)

    slots: list[Slot] = []
    for candidate in candidates:
        reason = unavailable_reason(candidate, timeline, capacity, staff_intervals)
        if reason is None and staff_full:
            reason = REASON_STAFF_QUOTA
        if reason is None and day_taken:
            reason = REASON_FULL_DAY
        surcharge = 0.0
        within_area = True

        if location is not None:
            if area is None:
                within_area = False
                reason = reason or "out_of_service_area"
            elif reason is None and quota_reached:
                reason = REASON_QUOTA
            elif reason is None:
                adjustment = adjust_for_travel(
                    candidate,
                    location,
                    travel_timeline(timeline, capacity),
                    area,
                    estimator,
                    tenant_base(tenant),
                )
                surcharge = adjustment.surcharge
                within_area = adjustment.within_service_area
                if not adjustment.feasible:
                    reason = adjustment.reason

        slot = Slot(
            start=candidate.start,
            end=candidate.end,
            available=reason is None,
            travel_surcharge_amount=surcharge,
            within_service_area=within_area,
            reason=reason,
        )
        if slot.available or include_unavailable:
            slots.append(slot)

    logger.debug(
        f"Availability tenant={tenant_id} service={service_id} staff={staff_id} "
        f"date={target_date}: {sum(s.available for s in slots)}/{len(candidates)} free"
        f"{' (full day)' if full_day else ''}"
    )
    result["slots"] = slots
    return result
