"""Shared test fixtures and helpers."""

import json
from datetime import date, datetime, timedelta
from typing import Optional

import pytest
from sqlalchemy.orm import sessionmaker

from booking_engine.database import build_engine
from booking_engine.models import (
    Base,
    CalendarOverrides,
    ServiceAreas,
    Services,
    StaffMembers,
    Tenants,
    t_staff_services,
)
from booking_engine.services.slots.config import BookingConfig
from booking_engine.services.slots.travel import GeoPoint, TravelEstimate, haversine_km

# Monday; NOW is the Sunday before, so the whole day is in the future
DAY = date(2030, 1, 7)
NOW = datetime(2030, 1, 6, 12, 0)

WEEKDAY_HOURS = {day: {"start": "09:00", "end": "17:00"} for day in ("mon", "tue", "wed", "thu", "fri")}

# Two points roughly 1.1 km apart in central Berlin
POINT_A = GeoPoint(52.5200, 13.4050)
POINT_B = GeoPoint(52.5300, 13.4050)


def at(hour: int, minute: int = 0, day: date = DAY) -> datetime:
    return datetime.combine(day, datetime.min.time()).replace(hour=hour, minute=minute)


class RecordingPublisher:
    """Collects published events instead of pushing them to Redis."""

    def __init__(self):
        self.events: list[tuple[str, dict]] = []

    def publish(self, event_type: str, payload: dict) -> None:
        self.events.append((event_type, payload))

    @property
    def types(self) -> list[str]:
        return [event_type for event_type, _ in self.events]


class FixedTravelEstimator:
    """Real distance, fixed duration."""

    def __init__(self, minutes: int):
        self.minutes = minutes
        self.calls: list[tuple[GeoPoint, GeoPoint]] = []

    def estimate(self, origin: GeoPoint, destination: GeoPoint) -> TravelEstimate:
        self.calls.append((origin, destination))
        return TravelEstimate(distance_km=round(haversine_km(origin, destination), 3), duration_minutes=self.minutes)


# ── Database ─────────────────────────────────────────────────────────────


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'booking.db'}", busy_timeout=30)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def config():
    return BookingConfig(slot_step_minutes=30, horizon_days=60)


@pytest.fixture
def publisher():
    return RecordingPublisher()


# ── Seed helpers ─────────────────────────────────────────────────────────


def make_tenant(db, hours: Optional[dict] = None, **kwargs) -> Tenants:
    tenant = Tenants(
        name=kwargs.pop("name", "Test Tenant"),
        timezone=kwargs.pop("timezone", "UTC"),
        work_schedule=json.dumps(WEEKDAY_HOURS if hours is None else hours),
        **kwargs,
    )
    db.add(tenant)
    db.commit()
    return tenant


def make_service(db, tenant: Tenants, **kwargs) -> Services:
    defaults = dict(
        name="Haircut",
        duration_min=30,
        buffer_before_min=0,
        buffer_after_min=0,
        home_visit_available=False,
        price=20.0,
    )
    defaults.update(kwargs)
    service = Services(tenant_id=tenant.id, **defaults)
    db.add(service)
    db.commit()
    return service


def make_staff(db, tenant: Tenants, services: tuple = (), schedule: Optional[dict] = None, **kwargs) -> StaffMembers:
    staff = StaffMembers(
        tenant_id=tenant.id,
        display_name=kwargs.pop("display_name", "Alex"),
        work_schedule=json.dumps(schedule or {}),
        **kwargs,
    )
    db.add(staff)
    db.flush()
    for service in services:
        db.execute(t_staff_services.insert().values(service_id=service.id, staff_id=staff.id))
    db.commit()
    return staff


def make_override(db, tenant: Tenants, target_type: str, kind: str, start: date = DAY,
                  end: Optional[date] = None, target_id: Optional[int] = None,
                  reason: Optional[str] = None) -> CalendarOverrides:
    override = CalendarOverrides(
        tenant_id=tenant.id,
        target_type=target_type,
        target_id=target_id,
        date_start=start.isoformat(),
        date_end=(end or start).isoformat(),
        override_kind=kind,
        reason=reason,
    )
    db.add(override)
    db.commit()
    return override


def make_circle_area(db, tenant: Tenants, center: GeoPoint = POINT_A, radius_km: float = 10.0,
                     **kwargs) -> ServiceAreas:
    area = ServiceAreas(
        tenant_id=tenant.id,
        name=kwargs.pop("name", "Centre"),
        boundary_type="circle",
        center_lat=center.lat,
        center_lng=center.lng,
        radius_km=radius_km,
        base_travel_surcharge=kwargs.pop("base_travel_surcharge", 5.0),
        per_km_surcharge=kwargs.pop("per_km_surcharge", 1.0),
        available_services=json.dumps(kwargs.pop("available_services", [])),
        **kwargs,
    )
    db.add(area)
    db.commit()
    return area


def next_monday(min_days_ahead: int = 3) -> date:
    """A Monday at least min_days_ahead days from today (for tests on the real clock)."""
    day = date.today() + timedelta(days=min_days_ahead)
    while day.weekday() != 0:
        day += timedelta(days=1)
    return day
