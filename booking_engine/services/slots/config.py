# booking_engine/services/slots/config.py
"""
Booking configuration for slots calculation.
"""

from dataclasses import dataclass, replace
from functools import lru_cache

from ...config import settings


@dataclass(frozen=True)
class BookingConfig:
    """
    Configuration for the availability engine.

    Attributes:
        slot_step_minutes: Candidate grid step in minutes (15/30/60)
        min_advance_minutes: Minimum lead time before a slot can be booked
        horizon_days: How many days ahead availability may be requested
        max_concurrent: Capacity of the unassigned-staff pool per service
        travel_minutes_per_km: Straight-line travel estimate slope
        travel_fixed_minutes: Fixed travel overhead (parking, walking)
    """
    slot_step_minutes: int = 30  # 15 / 30 / 60
    min_advance_minutes: int = 0
    horizon_days: int = 60
    max_concurrent: int = 1
    travel_minutes_per_km: float = 2.0
    travel_fixed_minutes: int = 5

    def __post_init__(self):
        """Validate configuration."""
        if self.slot_step_minutes not in (15, 30, 60):
            raise ValueError(f"slot_step_minutes must be 15, 30, or 60, got {self.slot_step_minutes}")
        if self.min_advance_minutes < 0:
            raise ValueError(f"min_advance_minutes must be >= 0, got {self.min_advance_minutes}")
        if self.horizon_days < 1:
            raise ValueError(f"horizon_days must be >= 1, got {self.horizon_days}")
        if self.max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {self.max_concurrent}")

    def for_tenant(self, tenant) -> "BookingConfig":
        """Apply a tenant's step and pool-capacity overrides."""
        changes = {}
        if tenant.slot_step_minutes:
            changes["slot_step_minutes"] = tenant.slot_step_minutes
        if tenant.max_concurrent:
            changes["max_concurrent"] = tenant.max_concurrent
        return replace(self, **changes) if changes else self

    def capacity_for(self, service) -> int:
        """Unassigned-pool capacity for a service (service setting wins)."""
        return service.max_concurrent or self.max_concurrent


@lru_cache
def get_booking_config() -> BookingConfig:
    """Get booking configuration built from settings (singleton)."""
    return BookingConfig(
        slot_step_minutes=settings.slot_step_minutes,
        min_advance_minutes=settings.min_advance_minutes,
        horizon_days=settings.horizon_days,
        max_concurrent=settings.default_max_concurrent,
        travel_minutes_per_km=settings.travel_minutes_per_km,
        travel_fixed_minutes=settings.travel_fixed_minutes,
    )


def time_str_to_minutes(value: str) -> int:
    """Convert "HH:MM" to minutes since midnight ("24:00" allowed)."""
    hour, minute = value.strip().split(":")
    total = int(hour) * 60 + int(minute)
    if not 0 <= total <= 24 * 60 or not 0 <= int(minute) < 60:
        raise ValueError(f"Invalid time: {value!r}")
    return total


def minutes_to_time_str(minutes: int) -> str:
    """Convert minutes since midnight to "HH:MM"."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"
