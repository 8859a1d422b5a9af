import json
from datetime import datetime
from types import SimpleNamespace

import pytest

from booking_engine.services.slots.calculator import build_candidate
from booking_engine.services.slots.travel import (
    REASON_OUT_OF_AREA,
    REASON_TRAVEL,
    GeoPoint,
    HaversineTravelEstimator,
    ServiceAreaRule,
    adjust_for_travel,
    find_service_area,
    haversine_km,
    neighbours,
)

from conftest import POINT_A, POINT_B, FixedTravelEstimator

SQUARE = (
    GeoPoint(52.50, 13.38),
    GeoPoint(52.50, 13.43),
    GeoPoint(52.54, 13.43),
    GeoPoint(52.54, 13.38),
)


def t(hour, minute=0):
    return datetime(2030, 1, 7, hour, minute)


def service(duration=30):
    return SimpleNamespace(id=1, duration_min=duration, buffer_before_min=0, buffer_after_min=0)


def visit(start, end, point=POINT_A, status="confirmed"):
    return SimpleNamespace(
        occupied_start=start,
        occupied_end=end,
        status=status,
        location_lat=point.lat if point else None,
        location_lng=point.lng if point else None,
    )


def circle(**kwargs):
    defaults = dict(
        id=1, name="Centre", boundary_type="circle", center=POINT_A, radius_km=5.0,
        base_travel_surcharge=5.0, per_km_surcharge=1.0,
    )
    defaults.update(kwargs)
    return ServiceAreaRule(**defaults)


class TestGeometry:
    def test_haversine(self):
        assert haversine_km(POINT_A, POINT_B) == pytest.approx(1.112, abs=0.01)
        assert haversine_km(POINT_A, POINT_A) == 0

    def test_estimator(self):
        estimator = HaversineTravelEstimator(minutes_per_km=2.0, fixed_minutes=5)
        assert estimator.estimate(POINT_A, POINT_B).duration_minutes == 8
        assert estimator.estimate(POINT_A, POINT_A).duration_minutes == 0

    def test_circle_contains(self):
        area = circle(radius_km=1.0)
        assert area.contains(POINT_A)
        assert not area.contains(POINT_B)

    def test_polygon_contains(self):
        area = ServiceAreaRule(id=2, name="Mitte", boundary_type="polygon", polygon=SQUARE)
        assert area.contains(POINT_A)
        assert not area.contains(GeoPoint(52.60, 13.405))

    def test_degenerate_polygon_contains_nothing(self):
        area = ServiceAreaRule(id=2, name="Line", boundary_type="polygon", polygon=SQUARE[:2])
        assert not area.contains(POINT_A)

    def test_invalid_coordinates(self):
        assert not GeoPoint(91, 0).is_valid()
        assert not GeoPoint(0, -181).is_valid()


class TestServiceAreaRule:
    def test_surcharge_non_decreasing(self):
        area = circle()
        amounts = [area.surcharge_for(d) for d in (0, 0.5, 1, 2.5, 10)]
        assert amounts == sorted(amounts)
        assert area.surcharge_for(2.5) == 7.5

    def test_from_row(self):
        row = SimpleNamespace(
            id=3, name="Ring", boundary_type="polygon", center_lat=None, center_lng=None,
            radius_km=None, polygon=json.dumps([[p.lat, p.lng] for p in SQUARE]),
            base_travel_surcharge=None, per_km_surcharge=2.0, max_travel_distance_km=None,
            available_services="[1, 2]", is_active=True,
        )
        rule = ServiceAreaRule.from_row(row)
        assert rule.polygon == SQUARE
        assert rule.service_ids == frozenset({1, 2})
        assert rule.base_travel_surcharge == 0.0
        assert rule.offers(2) and not rule.offers(3)

    def test_find_service_area_respects_services_and_order(self):
        areas = [
            circle(id=1, name="B-zone"),
            circle(id=2, name="A-zone", service_ids=frozenset({9})),
            circle(id=3, name="C-zone", is_active=False),
        ]
        assert find_service_area(POINT_A, areas, 1).id == 1
        assert find_service_area(POINT_A, areas, 9).id == 2
        assert find_service_area(GeoPoint(48.0, 11.0), areas, 1) is None


class TestAdjustForTravel:
    def test_out_of_area(self):
        result = adjust_for_travel(build_candidate(service(), t(10)), POINT_B, [], None, FixedTravelEstimator(5))
        assert not result.feasible
        assert not result.within_service_area
        assert result.reason == REASON_OUT_OF_AREA

    def test_travel_from_preceding_visit(self):
        # previous visit ends 10:00 at A; 20 minutes to B
        timeline = [visit(t(9, 30), t(10))]
        estimator = FixedTravelEstimator(20)

        too_soon = adjust_for_travel(build_candidate(service(), t(10, 5)), POINT_B, timeline, circle(), estimator)
        assert not too_soon.feasible
        assert too_soon.reason == REASON_TRAVEL

        later = adjust_for_travel(build_candidate(service(), t(10, 30)), POINT_B, timeline, circle(), estimator)
        assert later.feasible
        assert later.duration_minutes == 20
        assert later.surcharge == round(5.0 + later.distance_km, 2)

    def test_travel_to_following_visit(self):
        timeline = [visit(t(10, 45), t(11, 15))]
        result = adjust_for_travel(
            build_candidate(service(), t(10)), POINT_B, timeline, circle(), FixedTravelEstimator(20)
        )
        assert not result.feasible

    def test_cancelled_neighbours_ignored(self):
        timeline = [visit(t(9, 30), t(10), status="cancelled")]
        result = adjust_for_travel(
            build_candidate(service(), t(10, 5)), POINT_B, timeline, circle(), FixedTravelEstimator(20)
        )
        assert result.feasible

    def test_origin_defaults_to_base(self):
        estimator = FixedTravelEstimator(10)
        result = adjust_for_travel(build_candidate(service(), t(10)), POINT_B, [], circle(), estimator, base=POINT_A)
        assert estimator.calls == [(POINT_A, POINT_B)]
        assert result.distance_km == pytest.approx(1.112, abs=0.01)

    def test_no_origin_charges_base_only(self):
        result = adjust_for_travel(build_candidate(service(), t(10)), POINT_B, [], circle(), FixedTravelEstimator(10))
        assert result.feasible
        assert result.surcharge == 5.0
        assert result.distance_km == 0.0

    def test_max_travel_distance(self):
        result = adjust_for_travel(
            build_candidate(service(), t(10)), POINT_B, [], circle(max_travel_distance_km=0.5),
            FixedTravelEstimator(5), base=POINT_A,
        )
        assert not result.feasible
        assert result.reason == REASON_TRAVEL

    def test_neighbours(self):
        early = visit(t(8), t(9))
        late = visit(t(9), t(10))
        after = visit(t(12), t(13))
        preceding, following = neighbours([after, early, late], build_candidate(service(), t(10)))
        assert preceding is late
        assert following is after
