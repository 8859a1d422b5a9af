from .tables import (
    Base,
    BookingHistory,
    Bookings,
    CalendarOverrides,
    ServiceAreas,
    Services,
    StaffMembers,
    Tenants,
    metadata,
    t_staff_services,
)

__all__ = [
    "Base",
    "BookingHistory",
    "Bookings",
    "CalendarOverrides",
    "ServiceAreas",
    "Services",
    "StaffMembers",
    "Tenants",
    "metadata",
    "t_staff_services",
]
