"""
Booking creation and lifecycle.

create_booking validates the request against the same slot, conflict
and travel rules that availability uses, then reserves atomically.

Status lifecycle:
  pending   → confirmed | cancelled
  confirmed → completed | cancelled
  completed, cancelled: final
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from ..exceptions import (
    BookingEngineError,
    ConflictError,
    InfeasibleTravelError,
    InvalidTransitionError,
    OutOfServiceAreaError,
    ValidationError,
)
from ..models import Bookings, ServiceAreas
from . import booking_repository as repo
from .events import EventPublisher, booking_event_payload
from .slots.availability import (
    default_estimator,
    full_day_start,
    load_area_rules,
    staff_intervals_for,
    staff_quota_reached,
    tenant_base,
    tenant_now,
    to_tenant_local,
    travel_timeline,
    validate_booking_date,
)
from .slots.calculator import build_candidate, is_generated_start, tenant_day_intervals
from .slots.config import BookingConfig, get_booking_config
from .slots.conflicts import within_intervals
from .slots.travel import GeoPoint, ServiceAreaRule, TravelEstimator, adjust_for_travel, find_service_area

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}


def create_booking(
    db: Session,
    tenant_id: int,
    service_id: int,
    start: datetime,
    publisher: EventPublisher,
    staff_id: int | None = None,
    location: GeoPoint | None = None,
    location_address: str | None = None,
    customer_ref: str | None = None,
    notes: str | None = None,
    estimator: TravelEstimator | None = None,
    config: BookingConfig | None = None,
    now: datetime | None = None,
) -> Bookings:
    """
    Reserve a slot.

    The whole check runs inside one write transaction; of several racing
    requests for the same staff member and overlapping time, one commits
    and the others get ConflictError.

    Raises:
        NotFoundError, ValidationError, ConflictError, InfeasibleTravelError,
        OutOfServiceAreaError, UnavailableError
    """
    logger.info(
        f"Reservation attempt tenant={tenant_id} service={service_id} "
        f"staff={staff_id} start={start.isoformat()} home_visit={location is not None}"
    )

    with repo.store_errors(db):
        repo.begin_reservation(db)
        try:
            booking = _reserve(
                db, tenant_id, service_id, start, staff_id, location, location_address,
                customer_ref, notes, estimator, config, now,
            )
            db.commit()
        except BookingEngineError as e:
            db.rollback()
            logger.info(f"Reservation rejected tenant={tenant_id} service={service_id}: {e.code} {e.message}")
            raise

    logger.info(f"Booking {booking.booking_number} created (id={booking.id})")
    publisher.publish("booking.created", booking_event_payload(booking))
    return booking


def _reserve(
    db: Session,
    tenant_id: int,
    service_id: int,
    start: datetime,
    staff_id: int | None,
    location: GeoPoint | None,
    location_address: str | None,
    customer_ref: str | None,
    notes: str | None,
    estimator: TravelEstimator | None,
    config: BookingConfig | None,
    now: datetime | None,
) -> Bookings:
    tenant = repo.get_tenant(db, tenant_id)
    config = (config or get_booking_config()).for_tenant(tenant)
    service = repo.get_service(db, tenant_id, service_id)
    staff = repo.get_staff(db, tenant_id, staff_id, service_id) if staff_id is not None else None

    start = to_tenant_local(start, tenant)
    now = now or tenant_now(tenant)
    target_date = start.date()
    validate_booking_date(target_date, now.date(), config)

    if location is not None:
        if not service.home_visit_available:
            raise ValidationError("Service is not available as a home visit", service_id=service_id)
        if not location.is_valid():
            raise ValidationError("Invalid coordinates", lat=location.lat, lng=location.lng)

    # Same grid as availability
    overrides = repo.get_overrides(db, tenant_id, "tenant", target_date)
    business = tenant_day_intervals(tenant.work_schedule, overrides, target_date)
    if not is_generated_start(business, service, start, config):
        raise ValidationError(
            "Start time is outside business hours or not on the slot grid",
            start=start.isoformat(),
        )
    if start < now + timedelta(minutes=config.min_advance_minutes):
        raise ValidationError("Start time is in the past or too soon", start=start.isoformat())
    full_day = location is not None and service.home_visit_full_day
    if full_day and start != full_day_start(business, target_date):
        raise ValidationError("Full-day home visits start at opening time", start=start.isoformat())

    candidate = build_candidate(service, start)

    if staff is not None:
        staff_intervals = staff_intervals_for(db, tenant_id, staff, business, target_date)
        if not within_intervals(candidate, staff_intervals):
            raise ConflictError("Staff member is not working at this time", staff_id=staff_id)

    repo.lock_scope(db, tenant_id, staff_id, service_id)

    if staff_quota_reached(db, tenant_id, staff, service, target_date):
        raise ConflictError(
            f"Staff member is fully booked for this date (max {service.daily_quota_per_staff} per day)",
            staff_id=staff_id,
            date=target_date.isoformat(),
        )

    booking = Bookings(
        tenant_id=tenant_id,
        service_id=service_id,
        staff_id=staff_id,
        customer_ref=customer_ref,
        date_start=candidate.start,
        date_end=candidate.end,
        occupied_start=candidate.occupied_start,
        occupied_end=candidate.occupied_end,
        duration_minutes=service.duration_min,
        buffer_before_minutes=service.buffer_before_min or 0,
        buffer_after_minutes=service.buffer_after_min or 0,
        status="pending",
        is_home_visit=location is not None,
        travel_surcharge_amount=0.0,
        notes=notes,
        created_at=now,
        updated_at=now,
    )

    capacity = 1 if staff_id is not None else config.capacity_for(service)

    if location is not None:
        quota = tenant.home_visit_daily_quota
        if quota is not None:
            repo.lock_home_visit_quota(db, tenant_id)
            if repo.count_home_visits(db, tenant_id, target_date) >= quota:
                raise ConflictError(
                    f"Home visit slots are fully booked for this date (max {quota} per day)",
                    date=target_date.isoformat(),
                )
        if full_day and repo.count_bookings_on(
            db, tenant_id, target_date, staff_id=staff_id, service_id=service_id
        ) > 0:
            raise ConflictError("Full-day home visit needs a day without bookings", date=target_date.isoformat())

        area = find_service_area(location, load_area_rules(db, tenant_id), service_id)
        if area is None:
            raise OutOfServiceAreaError(
                "Location is outside every service area",
                lat=location.lat,
                lng=location.lng,
            )

        timeline = repo.day_timeline(db, tenant_id, target_date, staff_id=staff_id, service_id=service_id)
        adjustment = adjust_for_travel(
            candidate,
            location,
            travel_timeline(timeline, capacity),
            area,
            estimator or default_estimator(config),
            tenant_base(tenant),
        )
        if not adjustment.feasible:
            raise InfeasibleTravelError(
                "Staff member cannot reach this location in time",
                travel_minutes=adjustment.duration_minutes,
                distance_km=adjustment.distance_km,
            )

        booking.location_lat = location.lat
        booking.location_lng = location.lng
        booking.location_address = location_address
        booking.service_area_id = area.id
        booking.travel_distance_km = adjustment.distance_km
        booking.travel_duration_minutes = adjustment.duration_minutes
        booking.travel_surcharge_amount = adjustment.surcharge

    return repo.insert_booking_if_no_conflict(db, booking, capacity)


# ── Lifecycle ────────────────────────────────────────────────────────────


def check_transition(current: str, new_status: str) -> None:
    if new_status not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(
            f"Cannot change booking status from {current} to {new_status}",
            from_status=current,
            to_status=new_status,
        )


def _freeze_surcharge(db: Session, booking: Bookings, now: datetime) -> None:
    """Re-quote the travel surcharge from the current area, then freeze it."""
    if booking.surcharge_frozen_at is not None:
        return
    if booking.is_home_visit and booking.service_area_id is not None:
        row = db.get(ServiceAreas, booking.service_area_id)
        if row is not None and row.tenant_id == booking.tenant_id:
            rule = ServiceAreaRule.from_row(row)
            booking.travel_surcharge_amount = rule.surcharge_for(booking.travel_distance_km or 0.0)
    booking.surcharge_frozen_at = now


def transition_booking(
    db: Session,
    tenant_id: int,
    booking_id: int,
    new_status: str,
    publisher: EventPublisher,
    reason: str | None = None,
    now: datetime | None = None,
) -> Bookings:
    """
    Move a booking along the lifecycle.

    Raises:
        NotFoundError, InvalidTransitionError, ConflictError (concurrent
        change), UnavailableError
    """
    with repo.store_errors(db):
        try:
            booking = repo.get_booking(db, tenant_id, booking_id)
            check_transition(booking.status, new_status)
            now = now or tenant_now(repo.get_tenant(db, tenant_id))

            if new_status == "confirmed":
                _freeze_surcharge(db, booking, now)

            old_status = booking.status
            repo.update_booking_status(db, booking, new_status, reason=reason, now=now)
            db.commit()
        except BookingEngineError:
            db.rollback()
            raise

    logger.info(f"Booking {booking.id} {old_status} → {new_status}")
    publisher.publish(f"booking.{new_status}", booking_event_payload(booking))
    return booking


def confirm_booking(db: Session, tenant_id: int, booking_id: int, publisher: EventPublisher, **kwargs) -> Bookings:
    return transition_booking(db, tenant_id, booking_id, "confirmed", publisher, **kwargs)


def complete_booking(db: Session, tenant_id: int, booking_id: int, publisher: EventPublisher, **kwargs) -> Bookings:
    return transition_booking(db, tenant_id, booking_id, "completed", publisher, **kwargs)


def cancel_booking(
    db: Session,
    tenant_id: int,
    booking_id: int,
    publisher: EventPublisher,
    reason: str | None = None,
    now: datetime | None = None,
) -> Bookings:
    """Cancel a pending or confirmed booking; frees its interval immediately."""
    return transition_booking(db, tenant_id, booking_id, "cancelled", publisher, reason=reason, now=now)
