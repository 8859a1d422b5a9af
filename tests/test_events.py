import json
from types import SimpleNamespace

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from booking_engine.services.events import P2P_QUEUE, RedisEventPublisher, booking_event_payload
from booking_engine.services.slots.config import BookingConfig

from conftest import at


class FakeRedis:
    def __init__(self, fail=False):
        self.fail = fail
        self.lists = {}

    def rpush(self, key, value):
        if self.fail:
            raise RedisConnectionError("connection refused")
        self.lists.setdefault(key, []).append(value)
        return len(self.lists[key])


def booking():
    return SimpleNamespace(
        id=7, booking_number="BK-20300107-ABCDEF", tenant_id=1, service_id=2, staff_id=None,
        status="pending", date_start=at(10), date_end=at(10, 30), travel_surcharge_amount=6.11,
    )


def test_event_pushed_to_queue():
    redis = FakeRedis()
    RedisEventPublisher(redis).publish("booking.created", booking_event_payload(booking()))

    [raw] = redis.lists[P2P_QUEUE]
    event = json.loads(raw)
    assert event["type"] == "booking.created"
    assert event["booking_id"] == 7
    assert event["date_start"] == "2030-01-07T10:00:00"
    assert "ts" in event


def test_redis_failure_is_logged_not_raised(caplog):
    RedisEventPublisher(FakeRedis(fail=True)).publish("booking.cancelled", booking_event_payload(booking()))
    assert "Failed to emit event booking.cancelled" in caplog.text


class TestBookingConfig:
    @pytest.mark.parametrize("kwargs", [
        {"slot_step_minutes": 20},
        {"min_advance_minutes": -1},
        {"horizon_days": 0},
        {"max_concurrent": 0},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            BookingConfig(**kwargs)

    def test_tenant_overrides(self):
        tenant = SimpleNamespace(slot_step_minutes=15, max_concurrent=3)
        config = BookingConfig().for_tenant(tenant)
        assert config.slot_step_minutes == 15
        assert config.capacity_for(SimpleNamespace(max_concurrent=None)) == 3
        assert config.capacity_for(SimpleNamespace(max_concurrent=5)) == 5

    def test_no_tenant_overrides(self):
        config = BookingConfig()
        assert config.for_tenant(SimpleNamespace(slot_step_minutes=None, max_concurrent=None)) is config
