# booking_engine/services/slots/travel.py
"""
Travel-time adjustment for home-visit services.

For a candidate slot at a customer location:
- the location must lie inside an active service area offering the service
- the staff member must be able to get there from the commitment ending
  closest before the slot, and from there to the next commitment
- the surcharge is base + per_km * distance from the previous location
  (or from the business base when the day has no earlier commitment)

Distance/duration come from a pluggable TravelEstimator; the default is a
straight-line estimate.
"""

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Protocol

from .calculator import CandidateSlot
from .conflicts import is_active

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0

REASON_OUT_OF_AREA = "out_of_service_area"
REASON_TRAVEL = "travel_infeasible"


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float

    def is_valid(self) -> bool:
        return -90 <= self.lat <= 90 and -180 <= self.lng <= 180


@dataclass(frozen=True)
class TravelEstimate:
    distance_km: float
    duration_minutes: int


class TravelEstimator(Protocol):
    """Given two coordinates, return distance and travel duration."""

    def estimate(self, origin: GeoPoint, destination: GeoPoint) -> TravelEstimate:
        ...


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in kilometres."""
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


class HaversineTravelEstimator:
    """Rough estimate: minutes_per_km per kilometre plus a fixed overhead."""

    def __init__(self, minutes_per_km: float = 2.0, fixed_minutes: int = 5):
        self.minutes_per_km = minutes_per_km
        self.fixed_minutes = fixed_minutes

    def estimate(self, origin: GeoPoint, destination: GeoPoint) -> TravelEstimate:
        if origin == destination:
            return TravelEstimate(distance_km=0.0, duration_minutes=0)
        distance = haversine_km(origin, destination)
        duration = math.ceil(distance * self.minutes_per_km) + self.fixed_minutes
        return TravelEstimate(distance_km=round(distance, 3), duration_minutes=duration)


# ── Service areas ────────────────────────────────────────────────────────


def point_in_polygon(point: GeoPoint, polygon: tuple[GeoPoint, ...]) -> bool:
    """Ray casting; longitude is x, latitude is y."""
    inside = False
    j = len(polygon) - 1
    for i in range(len(polygon)):
        xi, yi = polygon[i].lng, polygon[i].lat
        xj, yj = polygon[j].lng, polygon[j].lat
        if (yi > point.lat) != (yj > point.lat):
            x_cross = (xj - xi) * (point.lat - yi) / (yj - yi) + xi
            if point.lng < x_cross:
                inside = not inside
        j = i
    return inside


@dataclass(frozen=True)
class ServiceAreaRule:
    """Immutable snapshot of a service area used during one computation."""
    id: int | None
    name: str
    boundary_type: str
    base_travel_surcharge: float = 0.0
    per_km_surcharge: float = 0.0
    center: GeoPoint | None = None
    radius_km: float | None = None
    polygon: tuple[GeoPoint, ...] = ()
    max_travel_distance_km: float | None = None
    service_ids: frozenset[int] = field(default_factory=frozenset)
    is_active: bool = True

    @classmethod
    def from_row(cls, row) -> "ServiceAreaRule":
        center = None
        if row.center_lat is not None and row.center_lng is not None:
            center = GeoPoint(row.center_lat, row.center_lng)
        try:
            raw_polygon = json.loads(row.polygon) if row.polygon else []
            polygon = tuple(GeoPoint(float(lat), float(lng)) for lat, lng in raw_polygon)
        except (ValueError, TypeError):
            logger.warning(f"Service area {row.id}: unparseable polygon")
            polygon = ()
        try:
            service_ids = frozenset(int(s) for s in json.loads(row.available_services or "[]"))
        except (ValueError, TypeError):
            logger.warning(f"Service area {row.id}: unparseable available_services")
            service_ids = frozenset()
        return cls(
            id=row.id,
            name=row.name,
            boundary_type=row.boundary_type,
            base_travel_surcharge=row.base_travel_surcharge or 0.0,
            per_km_surcharge=row.per_km_surcharge or 0.0,
            center=center,
            radius_km=row.radius_km,
            polygon=polygon,
            max_travel_distance_km=row.max_travel_distance_km,
            service_ids=service_ids,
            is_active=bool(row.is_active),
        )

    def contains(self, point: GeoPoint) -> bool:
        if self.boundary_type == "circle":
            if self.center is None or not self.radius_km:
                return False
            return haversine_km(point, self.center) <= self.radius_km
        if self.boundary_type == "polygon":
            if len(self.polygon) < 3:
                return False
            return point_in_polygon(point, self.polygon)
        return False

    def offers(self, service_id: int) -> bool:
        return not self.service_ids or service_id in self.service_ids

    def surcharge_for(self, distance_km: float) -> float:
        """Base surcharge plus distance component; non-decreasing in distance."""
        return round(self.base_travel_surcharge + self.per_km_surcharge * max(distance_km, 0.0), 2)


def find_service_area(
    point: GeoPoint,
    areas: list[ServiceAreaRule],
    service_id: int,
) -> ServiceAreaRule | None:
    """First active area (by name) that covers the point and offers the service."""
    for area in sorted(areas, key=lambda a: a.name):
        if area.is_active and area.offers(service_id) and area.contains(point):
            return area
    return None


# ── Adjustment ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TravelAdjustment:
    feasible: bool
    within_service_area: bool
    surcharge: float = 0.0
    distance_km: float = 0.0
    duration_minutes: int = 0
    reason: str | None = None


def location_of(booking, base: GeoPoint | None) -> GeoPoint | None:
    """Where a commitment takes place: its visit address, else the business base."""
    if booking.location_lat is not None and booking.location_lng is not None:
        return GeoPoint(booking.location_lat, booking.location_lng)
    return base


def neighbours(timeline: list, candidate: CandidateSlot):
    """
    Active commitments ending closest before and starting closest after
    the candidate's occupied interval.
    """
    preceding = None
    following = None
    for booking in timeline:
        if not is_active(booking):
            continue
        if booking.occupied_end <= candidate.occupied_start:
            if preceding is None or booking.occupied_end > preceding.occupied_end:
                preceding = booking
        elif booking.occupied_start >= candidate.occupied_end:
            if following is None or booking.occupied_start < following.occupied_start:
                following = booking
    return preceding, following


def adjust_for_travel(
    candidate: CandidateSlot,
    destination: GeoPoint,
    timeline: list,
    area: ServiceAreaRule | None,
    estimator: TravelEstimator,
    base: GeoPoint | None = None,
) -> TravelAdjustment:
    """
    Annotate a home-visit candidate with surcharge and feasibility.

    Infeasible travel makes the slot unavailable (like a conflict); it is
    never just surcharged.
    """
    if area is None:
        return TravelAdjustment(feasible=False, within_service_area=False, reason=REASON_OUT_OF_AREA)

    preceding, following = neighbours(timeline, candidate)

    origin = location_of(preceding, base) if preceding is not None else base
    inbound = TravelEstimate(0.0, 0)
    if origin is not None:
        inbound = estimator.estimate(origin, destination)

    surcharge = area.surcharge_for(inbound.distance_km)
    result = dict(
        within_service_area=True,
        surcharge=surcharge,
        distance_km=inbound.distance_km,
        duration_minutes=inbound.duration_minutes,
    )

    if area.max_travel_distance_km is not None and inbound.distance_km > area.max_travel_distance_km:
        return TravelAdjustment(feasible=False, reason=REASON_TRAVEL, **result)

    if preceding is not None:
        arrival = preceding.occupied_end + timedelta(minutes=inbound.duration_minutes)
        if arrival > candidate.occupied_start:
            return TravelAdjustment(feasible=False, reason=REASON_TRAVEL, **result)

    if following is not None:
        next_location = location_of(following, base)
        if next_location is not None:
            outbound = estimator.estimate(destination, next_location)
            if candidate.occupied_end + timedelta(minutes=outbound.duration_minutes) > following.occupied_start:
                return TravelAdjustment(feasible=False, reason=REASON_TRAVEL, **result)

    return TravelAdjustment(feasible=True, **result)
