"""
Persistence for the booking engine.

Every lookup is scoped by tenant_id. The reservation primitive
insert_booking_if_no_conflict re-runs the conflict check inside the
caller's write transaction, so at most one of several racing
reservations for the same staff member (or service pool) can win.

SQLite: the transaction is opened with BEGIN IMMEDIATE (begin_reservation),
which admits one writer at a time across processes.
Server databases: the staff row (or service row for the unassigned pool)
is locked FOR UPDATE before the check.
"""

import logging
import secrets
from contextlib import contextmanager
from datetime import date, datetime, timedelta

from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from ..database import IMMEDIATE
from ..exceptions import ConflictError, NotFoundError, UnavailableError, ValidationError
from ..models import (
    BookingHistory,
    Bookings,
    CalendarOverrides,
    ServiceAreas,
    Services,
    StaffMembers,
    Tenants,
    t_staff_services,
)
from .slots.conflicts import ACTIVE_STATUSES, find_conflicts

logger = logging.getLogger(__name__)


@contextmanager
def store_errors(db: Session):
    """
    Translate backing-store failures.

    IntegrityError → ConflictError; any other DBAPI failure → UnavailableError.
    The session is rolled back in both cases.
    """
    try:
        yield
    except IntegrityError as e:
        db.rollback()
        logger.info(f"Integrity error treated as conflict: {e.orig}")
        raise ConflictError("Booking conflicts with an existing booking") from e
    except DBAPIError as e:
        db.rollback()
        logger.exception("Backing store failure")
        raise UnavailableError("Booking store is temporarily unavailable") from e


def begin_reservation(db: Session) -> None:
    """
    Open the session's transaction as a write-locking one.

    A read-only transaction left open by earlier lookups is ended first.
    A session with pending writes is refused; reservations start from a
    clean session.
    """
    if db.new or db.dirty or db.deleted:
        raise RuntimeError("begin_reservation needs a session without pending writes")
    if db.in_transaction():
        db.commit()
    db.connection(execution_options={IMMEDIATE: True})


# ── Lookups ──────────────────────────────────────────────────────────────


def get_tenant(db: Session, tenant_id: int) -> Tenants:
    tenant = db.execute(
        select(Tenants).where(Tenants.id == tenant_id, Tenants.is_active.is_(True))
    ).scalar_one_or_none()
    if tenant is None:
        raise NotFoundError("Tenant not found", tenant_id=tenant_id)
    return tenant


def get_service(db: Session, tenant_id: int, service_id: int) -> Services:
    service = db.execute(
        select(Services).where(
            Services.id == service_id,
            Services.tenant_id == tenant_id,
            Services.is_active.is_(True),
        )
    ).scalar_one_or_none()
    if service is None:
        raise NotFoundError("Service not found or inactive", service_id=service_id)
    return service


def get_staff(db: Session, tenant_id: int, staff_id: int, service_id: int | None = None) -> StaffMembers:
    """Active staff member of the tenant; when service_id is given, must perform it."""
    staff = db.execute(
        select(StaffMembers).where(
            StaffMembers.id == staff_id,
            StaffMembers.tenant_id == tenant_id,
            StaffMembers.is_active.is_(True),
        )
    ).scalar_one_or_none()
    if staff is None:
        raise NotFoundError("Staff member not found or inactive", staff_id=staff_id)

    if service_id is not None:
        assigned = db.execute(
            select(t_staff_services.c.staff_id).where(
                t_staff_services.c.staff_id == staff_id,
                t_staff_services.c.service_id == service_id,
                t_staff_services.c.is_active.is_(True),
            )
        ).first()
        if assigned is None:
            raise ValidationError(
                "Staff member does not perform this service",
                staff_id=staff_id,
                service_id=service_id,
            )
    return staff


def get_booking(db: Session, tenant_id: int, booking_id: int) -> Bookings:
    booking = db.execute(
        select(Bookings).where(Bookings.id == booking_id, Bookings.tenant_id == tenant_id)
    ).scalar_one_or_none()
    if booking is None:
        raise NotFoundError("Booking not found", booking_id=booking_id)
    return booking


def list_bookings(
    db: Session,
    tenant_id: int,
    target_date: date | None = None,
    staff_id: int | None = None,
) -> list[Bookings]:
    query = select(Bookings).where(Bookings.tenant_id == tenant_id)
    if target_date is not None:
        day_start = datetime.combine(target_date, datetime.min.time())
        query = query.where(
            Bookings.date_start >= day_start,
            Bookings.date_start < day_start + timedelta(days=1),
        )
    if staff_id is not None:
        query = query.where(Bookings.staff_id == staff_id)
    return list(db.execute(query.order_by(Bookings.date_start, Bookings.id)).scalars())


def get_overrides(
    db: Session,
    tenant_id: int,
    target_type: str,
    target_date: date,
    target_id: int | None = None,
) -> list[CalendarOverrides]:
    """Calendar overrides (blocked dates, time off) covering target_date."""
    date_str = target_date.isoformat()
    query = select(CalendarOverrides).where(
        CalendarOverrides.tenant_id == tenant_id,
        CalendarOverrides.target_type == target_type,
        CalendarOverrides.date_start <= date_str,
        CalendarOverrides.date_end >= date_str,
    )
    if target_id is not None:
        query = query.where(CalendarOverrides.target_id == target_id)
    return list(db.execute(query).scalars())


def get_service_areas(db: Session, tenant_id: int, include_inactive: bool = False) -> list[ServiceAreas]:
    query = select(ServiceAreas).where(ServiceAreas.tenant_id == tenant_id)
    if not include_inactive:
        query = query.where(ServiceAreas.is_active.is_(True))
    return list(db.execute(query.order_by(ServiceAreas.name)).scalars())


def get_service_area(db: Session, tenant_id: int, area_id: int) -> ServiceAreas:
    area = db.execute(
        select(ServiceAreas).where(ServiceAreas.id == area_id, ServiceAreas.tenant_id == tenant_id)
    ).scalar_one_or_none()
    if area is None:
        raise NotFoundError("Service area not found", service_area_id=area_id)
    return area


# ── Overlap queries ──────────────────────────────────────────────────────


def _scope_filter(tenant_id: int, staff_id: int | None, service_id: int | None):
    """Staff scope when staff_id is set, otherwise the service's unassigned pool."""
    if staff_id is not None:
        return and_(Bookings.tenant_id == tenant_id, Bookings.staff_id == staff_id)
    return and_(
        Bookings.tenant_id == tenant_id,
        Bookings.staff_id.is_(None),
        Bookings.service_id == service_id,
    )


def find_overlapping(
    db: Session,
    tenant_id: int,
    window_start: datetime,
    window_end: datetime,
    staff_id: int | None = None,
    service_id: int | None = None,
) -> list[Bookings]:
    """Active bookings in scope whose occupied interval overlaps [window_start, window_end)."""
    if staff_id is None and service_id is None:
        raise ValueError("find_overlapping needs staff_id or service_id")
    query = (
        select(Bookings)
        .where(
            _scope_filter(tenant_id, staff_id, service_id),
            Bookings.status.in_(ACTIVE_STATUSES),
            Bookings.occupied_start < window_end,
            Bookings.occupied_end > window_start,
        )
        .order_by(Bookings.occupied_start)
    )
    return list(db.execute(query).scalars())


def day_timeline(
    db: Session,
    tenant_id: int,
    target_date: date,
    staff_id: int | None = None,
    service_id: int | None = None,
) -> list[Bookings]:
    """Active bookings in scope around target_date (one day of margin each side)."""
    day_start = datetime.combine(target_date, datetime.min.time())
    return find_overlapping(
        db,
        tenant_id,
        day_start - timedelta(days=1),
        day_start + timedelta(days=2),
        staff_id=staff_id,
        service_id=service_id,
    )


def count_bookings_on(
    db: Session,
    tenant_id: int,
    target_date: date,
    staff_id: int | None = None,
    service_id: int | None = None,
) -> int:
    """Active bookings in scope starting on target_date (any service for a staff member)."""
    day_start = datetime.combine(target_date, datetime.min.time())
    return db.execute(
        select(func.count(Bookings.id)).where(
            _scope_filter(tenant_id, staff_id, service_id),
            Bookings.status.in_(ACTIVE_STATUSES),
            Bookings.date_start >= day_start,
            Bookings.date_start < day_start + timedelta(days=1),
        )
    ).scalar_one()


def count_home_visits(db: Session, tenant_id: int, target_date: date) -> int:
    day_start = datetime.combine(target_date, datetime.min.time())
    return db.execute(
        select(func.count(Bookings.id)).where(
            Bookings.tenant_id == tenant_id,
            Bookings.is_home_visit.is_(True),
            Bookings.status.in_(ACTIVE_STATUSES),
            Bookings.date_start >= day_start,
            Bookings.date_start < day_start + timedelta(days=1),
        )
    ).scalar_one()


# ── Writes ───────────────────────────────────────────────────────────────


def lock_scope(db: Session, tenant_id: int, staff_id: int | None, service_id: int) -> None:
    """
    Serialize reservations for one staff member (or one service pool).

    Renders SELECT ... FOR UPDATE on server databases; SQLite ignores it
    and is already serialized by BEGIN IMMEDIATE.
    """
    if staff_id is not None:
        query = select(StaffMembers.id).where(
            StaffMembers.id == staff_id, StaffMembers.tenant_id == tenant_id
        )
    else:
        query = select(Services.id).where(Services.id == service_id, Services.tenant_id == tenant_id)
    db.execute(query.with_for_update()).first()


def lock_home_visit_quota(db: Session, tenant_id: int) -> None:
    """
    Serialize home-visit reservations of one tenant while the daily quota
    is counted. Taken after lock_scope.
    """
    db.execute(select(Tenants.id).where(Tenants.id == tenant_id).with_for_update()).first()


BOOKING_NUMBER_ATTEMPTS = 5


def generate_booking_number(start: datetime) -> str:
    return f"BK-{start:%Y%m%d}-{secrets.token_hex(3).upper()}"


def _add_with_booking_number(db: Session, booking: Bookings) -> None:
    """Insert under a savepoint, drawing a new number when it is already taken."""
    fixed = bool(booking.booking_number)
    for attempt in range(1, BOOKING_NUMBER_ATTEMPTS + 1):
        if not fixed:
            booking.booking_number = generate_booking_number(booking.date_start)
        try:
            with db.begin_nested():
                db.add(booking)
                db.flush()
            return
        except IntegrityError as e:
            if fixed or "booking_number" not in str(e.orig) or attempt == BOOKING_NUMBER_ATTEMPTS:
                raise
            logger.warning(f"Booking number {booking.booking_number} taken, retrying ({attempt})")


def insert_booking_if_no_conflict(db: Session, booking: Bookings, capacity: int = 1) -> Bookings:
    """
    Insert `booking` unless it conflicts with committed state.

    Must run inside the reservation transaction. Raises ConflictError and
    leaves nothing added when the interval is taken. Does not commit.
    """
    lock_scope(db, booking.tenant_id, booking.staff_id, booking.service_id)

    overlapping = find_overlapping(
        db,
        booking.tenant_id,
        booking.occupied_start,
        booking.occupied_end,
        staff_id=booking.staff_id,
        service_id=booking.service_id,
    )
    effective_capacity = 1 if booking.staff_id is not None else capacity
    conflicts = find_conflicts(booking, overlapping, effective_capacity)
    if conflicts:
        raise ConflictError(
            "Requested time is no longer available",
            conflicting_booking_ids=[b.id for b in conflicts],
        )

    _add_with_booking_number(db, booking)
    db.add(BookingHistory(
        booking_id=booking.id,
        tenant_id=booking.tenant_id,
        from_status=None,
        to_status=booking.status,
    ))
    db.flush()
    return booking


def update_booking_status(
    db: Session,
    booking: Bookings,
    new_status: str,
    reason: str | None = None,
    now: datetime | None = None,
) -> Bookings:
    """
    Compare-and-set the status; a concurrent change makes this a no-op
    that raises ConflictError. Records history. Does not commit.
    """
    now = now or datetime.now()
    # pending attribute changes (e.g. frozen surcharge) must reach the row first
    db.flush()
    old_status = booking.status
    values = {"status": new_status, "updated_at": now}
    if new_status == "cancelled":
        values["cancel_reason"] = reason

    result = db.execute(
        update(Bookings)
        .where(
            Bookings.id == booking.id,
            Bookings.tenant_id == booking.tenant_id,
            Bookings.status == old_status,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError("Booking was modified concurrently", booking_id=booking.id)

    db.add(BookingHistory(
        booking_id=booking.id,
        tenant_id=booking.tenant_id,
        from_status=old_status,
        to_status=new_status,
        reason=reason,
    ))
    db.flush()
    db.refresh(booking)
    return booking
