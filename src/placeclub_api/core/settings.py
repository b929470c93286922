from functools import lru_cache
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./placeclub.db"
    database_echo: bool = False
    log_level: str = "INFO"

    # Internal API security
    operator_api_key: str = ""

    # Calendar anchoring for periodic missions
    service_timezone: str = "Europe/Rome"

    @field_validator("service_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as error:
            raise ValueError(f"Unknown time zone: {value}") from error
        return value

    # Partner code redemptions
    redemption_base_points: int = Field(default=100, gt=0)
    redemption_cooldown_seconds: int = Field(default=24 * 60 * 60, ge=0)

    # Proximity unlocks
    location_unlock_radius_meters: float = Field(default=100.0, gt=0)
    event_checkin_radius_meters: float = Field(default=50.0, gt=0)

    # Reward multipliers
    boost_max_multiplier: float = Field(default=5.0, ge=1.0)
    boost_max_duration_hours: int = Field(default=24 * 30, gt=0)

    # Tracing
    tracing_enabled: bool = True


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
