# booking_engine/config.py

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    database_url: str = "sqlite:///./booking.db"
    redis_url: str = "redis://localhost:6379/0"
    log_level: str = "INFO"

    # SQLite waits this long for the write lock before giving up
    sqlite_busy_timeout: float = 30.0

    # Booking defaults (tenants may override step and capacity)
    slot_step_minutes: int = 30
    min_advance_minutes: int = 0
    horizon_days: int = 60
    default_max_concurrent: int = 1

    # Straight-line travel estimate: ceil(km * minutes_per_km) + fixed
    travel_minutes_per_km: float = 2.0
    travel_fixed_minutes: int = 5

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_prefix="BOOKING_",
        extra="ignore",
    )

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///./"):
            relative_path = url.replace("sqlite:///./", "")
            absolute_path = BASE_DIR / relative_path
            return f"sqlite:///{absolute_path}"
        return url


settings = Settings()
