# booking_engine/services/slots/__init__.py
"""
Availability engine.

Slot Generator:        calculator.generate_slots
Conflict Resolver:     conflicts.find_conflicts / filter_available
Travel-Time Adjuster:  travel.adjust_for_travel

availability.get_availability combines the three against the database.
"""

from .config import BookingConfig, get_booking_config
from .calculator import CandidateSlot, generate_slots
from .conflicts import filter_available, find_conflicts, overlaps
from .travel import GeoPoint, HaversineTravelEstimator, ServiceAreaRule, adjust_for_travel

__all__ = [
    "BookingConfig",
    "get_booking_config",
    "CandidateSlot",
    "generate_slots",
    "filter_available",
    "find_conflicts",
    "overlaps",
    "GeoPoint",
    "HaversineTravelEstimator",
    "ServiceAreaRule",
    "adjust_for_travel",
]
