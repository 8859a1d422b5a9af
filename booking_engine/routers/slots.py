# booking_engine/routers/slots.py
"""
Availability API.

GET /tenants/{tenant_id}/availability - slots for a service on a day
"""

from datetime import date
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.slots import AvailabilityResponse
from ..services.slots.availability import get_availability
from ..services.slots.travel import GeoPoint


router = APIRouter(prefix="/tenants/{tenant_id}", tags=["availability"])


@router.get("/availability", response_model=AvailabilityResponse)
def get_availability_day(
    tenant_id: int,
    service_id: int,
    target_date: date = Query(..., alias="date"),
    staff_id: int | None = None,
    lat: float | None = Query(None, ge=-90, le=90),
    lng: float | None = Query(None, ge=-180, le=180),
    include_unavailable: bool = False,
    db: Session = Depends(get_db),
):
    """Slots for a service on a day; lat/lng asks for a home visit at that point."""
    if (lat is None) != (lng is None):
        raise HTTPException(status_code=400, detail="lat and lng must be given together")

    location = GeoPoint(lat, lng) if lat is not None else None

    result = get_availability(
        db=db,
        tenant_id=tenant_id,
        service_id=service_id,
        target_date=target_date,
        staff_id=staff_id,
        location=location,
        include_unavailable=include_unavailable,
    )
    return AvailabilityResponse(**result)
