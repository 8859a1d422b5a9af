import threading

import pytest
from sqlalchemy import func, select

from booking_engine.exceptions import ConflictError
from booking_engine.models import Bookings
from booking_engine.services import booking_service

from conftest import NOW, RecordingPublisher, at, make_service, make_staff, make_tenant


def race(session_factory, attempts, config):
    """Run create_booking calls in parallel threads, each with its own session."""
    barrier = threading.Barrier(len(attempts))
    publisher = RecordingPublisher()
    outcomes = []
    lock = threading.Lock()

    def worker(kwargs):
        session = session_factory()
        try:
            barrier.wait()
            try:
                booking_service.create_booking(session, publisher=publisher, config=config, now=NOW, **kwargs)
                outcome = "ok"
            except ConflictError:
                outcome = "conflict"
            with lock:
                outcomes.append(outcome)
        finally:
            session.close()

    threads = [threading.Thread(target=worker, args=(kwargs,)) for kwargs in attempts]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return outcomes


@pytest.fixture
def ids(db):
    tenant = make_tenant(db)
    service = make_service(db, tenant, duration_min=60)
    staff = make_staff(db, tenant, services=(service,))
    return tenant.id, service.id, staff.id


def active_count(db):
    db.rollback()
    return db.execute(select(func.count(Bookings.id)).where(Bookings.status == "pending")).scalar_one()


def test_same_slot_single_winner(db, session_factory, ids, config):
    tenant_id, service_id, staff_id = ids
    attempt = dict(tenant_id=tenant_id, service_id=service_id, staff_id=staff_id, start=at(10))

    outcomes = race(session_factory, [attempt] * 8, config)

    assert sorted(outcomes) == ["conflict"] * 7 + ["ok"]
    assert active_count(db) == 1


def test_overlapping_starts_single_winner(db, session_factory, ids, config):
    tenant_id, service_id, staff_id = ids
    attempts = [
        dict(tenant_id=tenant_id, service_id=service_id, staff_id=staff_id, start=start)
        for start in (at(10), at(10, 30), at(10), at(10, 30))
    ]

    outcomes = race(session_factory, attempts, config)

    assert outcomes.count("ok") == 1
    assert active_count(db) == 1


def test_pool_capacity_respected(db, session_factory, config):
    tenant = make_tenant(db)
    service = make_service(db, tenant, max_concurrent=2)
    attempt = dict(tenant_id=tenant.id, service_id=service.id, start=at(10))

    outcomes = race(session_factory, [attempt] * 5, config)

    assert outcomes.count("ok") == 2
    assert outcomes.count("conflict") == 3
    assert active_count(db) == 2
