"""
booking_engine/services/events.py

Event publishing for downstream consumers (invoicing, notifications,
analytics). Events are pushed to the Redis list `events:p2p`.

Publication happens after commit; a failed push is logged and does not
undo the booking.
"""

import json
import logging
import time
from typing import Protocol

from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

P2P_QUEUE = "events:p2p"


class EventPublisher(Protocol):
    def publish(self, event_type: str, payload: dict) -> None:
        ...


class RedisEventPublisher:
    """Push events to a Redis list for the consumer loop."""

    def __init__(self, redis: Redis, queue: str = P2P_QUEUE):
        self.redis = redis
        self.queue = queue

    def publish(self, event_type: str, payload: dict) -> None:
        event = {
            "type": event_type,
            **payload,
            "ts": int(time.time()),
        }
        try:
            self.redis.rpush(self.queue, json.dumps(event))
            logger.info(f"Event emitted: {event_type} → {self.queue}")
        except RedisError as e:
            logger.error(f"Failed to emit event {event_type}: {e}")


def booking_event_payload(booking) -> dict:
    """Payload shared by all booking.* events."""
    return {
        "booking_id": booking.id,
        "booking_number": booking.booking_number,
        "tenant_id": booking.tenant_id,
        "service_id": booking.service_id,
        "staff_id": booking.staff_id,
        "status": booking.status,
        "date_start": booking.date_start.isoformat(),
        "date_end": booking.date_end.isoformat(),
        "travel_surcharge_amount": booking.travel_surcharge_amount,
    }


def get_event_publisher() -> EventPublisher:
    """FastAPI dependency: publisher bound to the shared Redis client."""
    from ..redis_client import redis_client
    return RedisEventPublisher(redis_client)
