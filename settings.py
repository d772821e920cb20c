"""Runtime configuration for the vehicle health API, CLI and dashboard."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Every value can be overridden with an environment variable prefixed with
    ``VHM_`` (for example ``VHM_DATABASE_URL``) or through a local ``.env``.
    """

    model_config = SettingsConfigDict(env_prefix="VHM_", env_file=".env", extra="ignore")

    app_name: str = "Vehicle Health Monitor API"
    debug: bool = False
    log_level: str = "INFO"

    database_url: str = "sqlite:///./vehicle_health.db"

    # Synthetic history created for each new vehicle (one reading per hour).
    backfill_hours: int = 48

    # Service appointments are priced inside this band (inclusive).
    appointment_cost_min: int = 500
    appointment_cost_max: int = 3499

    # None means "use system randomness"; set it to make backfills repeatable.
    random_seed: Optional[int] = None

    alert_list_limit: int = 50
    sensor_window_hours: int = 24

    api_host: str = "0.0.0.0"
    api_port: int = 8000


@lru_cache
def get_settings() -> Settings:
    return Settings()
