# booking_engine/schemas/slots.py
"""
Pydantic schemas for availability API.
"""

from datetime import date, datetime
from pydantic import BaseModel, Field


class SlotRead(BaseModel):
    """A single computed slot."""
    start: datetime
    end: datetime
    available: bool
    travel_surcharge_amount: float = 0.0
    within_service_area: bool = True
    reason: str | None = Field(None, description="Why the slot is not bookable")

    model_config = {"from_attributes": True}


class AvailabilityResponse(BaseModel):
    """Slots for a service (and optionally a staff member) on a day."""
    tenant_id: int
    service_id: int
    staff_id: int | None = None
    date: date
    slot_step_minutes: int = Field(description="Grid step in minutes (15/30/60)")
    service_duration_min: int
    slots: list[SlotRead]

    model_config = {"from_attributes": True}
