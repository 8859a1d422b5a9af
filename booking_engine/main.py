import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from .config import settings
from .exceptions import BookingEngineError
from .redis_client import redis_client
from .routers import bookings, service_areas, slots

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Booking Availability API")

app.include_router(slots.router)
app.include_router(bookings.router)
app.include_router(service_areas.router)


@app.exception_handler(BookingEngineError)
async def booking_error_handler(request: Request, exc: BookingEngineError):
    if exc.status_code >= 500:
        logger.warning(f"{request.method} {request.url.path}: {exc.code} {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.message, **exc.details},
    )


@app.get("/health")
def health():
    try:
        redis_ok = bool(redis_client.ping())
    except RedisError:
        redis_ok = False
    return {"redis": redis_ok}
