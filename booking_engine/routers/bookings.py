# booking_engine/routers/bookings.py
# No PATCH/DELETE: bookings change only through lifecycle endpoints

from datetime import date
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.bookings import (
    BookingCancel,
    BookingCreate,
    BookingRead,
    BookingStatusUpdate,
)
from ..services import booking_repository as repo
from ..services import booking_service
from ..services.events import EventPublisher, get_event_publisher
from ..services.slots.travel import GeoPoint

router = APIRouter(prefix="/tenants/{tenant_id}/bookings", tags=["bookings"])


@router.get("/", response_model=list[BookingRead])
def list_bookings(
    tenant_id: int,
    target_date: date | None = Query(None, alias="date"),
    staff_id: int | None = None,
    db: Session = Depends(get_db),
):
    with repo.store_errors(db):
        return repo.list_bookings(db, tenant_id, target_date, staff_id)


@router.get("/{id}", response_model=BookingRead)
def get_booking(tenant_id: int, id: int, db: Session = Depends(get_db)):
    with repo.store_errors(db):
        return repo.get_booking(db, tenant_id, id)


@router.post("/", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
def create_booking(
    tenant_id: int,
    data: BookingCreate,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    location = None
    address = None
    if data.location is not None:
        location = GeoPoint(data.location.lat, data.location.lng)
        address = data.location.address

    return booking_service.create_booking(
        db,
        tenant_id=tenant_id,
        service_id=data.service_id,
        start=data.start,
        publisher=publisher,
        staff_id=data.staff_id,
        location=location,
        location_address=address,
        customer_ref=data.customer_ref,
        notes=data.notes,
    )


@router.post("/{id}/cancel", response_model=BookingRead)
def cancel_booking(
    tenant_id: int,
    id: int,
    data: BookingCancel | None = None,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    reason = data.reason if data else None
    return booking_service.cancel_booking(db, tenant_id, id, publisher, reason=reason)


@router.post("/{id}/status", response_model=BookingRead)
def change_status(
    tenant_id: int,
    id: int,
    data: BookingStatusUpdate,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    return booking_service.transition_booking(
        db, tenant_id, id, data.status, publisher, reason=data.reason
    )
