# booking_engine/schemas/bookings.py

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field


class LocationIn(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    address: Optional[str] = Field(None, max_length=500)

    model_config = {"extra": "forbid"}


class BookingCreate(BaseModel):
    service_id: int = Field(gt=0)
    staff_id: Optional[int] = Field(None, gt=0)

    # Tenant-local wall clock; values with an offset are converted
    start: datetime

    customer_ref: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = Field(None, max_length=2000)
    location: Optional[LocationIn] = None

    model_config = {"extra": "forbid"}


class BookingStatusUpdate(BaseModel):
    status: Literal["confirmed", "completed", "cancelled"]
    reason: Optional[str] = Field(None, max_length=500)

    model_config = {"extra": "forbid"}


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)

    model_config = {"extra": "forbid"}


class BookingRead(BaseModel):
    id: int
    booking_number: str

    tenant_id: int
    service_id: int
    staff_id: Optional[int] = None
    customer_ref: Optional[str] = None

    date_start: datetime
    date_end: datetime
    occupied_start: datetime
    occupied_end: datetime

    duration_minutes: int
    buffer_before_minutes: int
    buffer_after_minutes: int

    status: str
    is_home_visit: bool
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None
    location_address: Optional[str] = None
    service_area_id: Optional[int] = None
    travel_distance_km: Optional[float] = None
    travel_duration_minutes: Optional[int] = None
    travel_surcharge_amount: float
    surcharge_frozen_at: Optional[datetime] = None

    notes: Optional[str] = None
    cancel_reason: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
