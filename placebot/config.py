"""Runtime configuration based on environment variables."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AnyHttpUrl, BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GeocoderSettings(BaseModel):
    base_url: AnyHttpUrl = Field(default="https://nominatim.openstreetmap.org")
    user_agent: str = Field(
        default="placebot/0.1 (set your email)",
        min_length=1,
        description="Nominatim requires an identifying User-Agent with contact details.",
    )
    accept_language: str = "en"
    suggestion_limit: int = Field(default=8, ge=1, le=40)
    poi_only: bool = Field(
        default=True,
        description="Restrict suggestions to points of interest (no plain street addresses).",
    )
    country_codes: str | None = None
    request_timeout_seconds: int = Field(default=10, ge=1, le=60)
    min_request_interval_seconds: float = Field(default=1.0, ge=0.0, le=10.0)
    max_attempts: int = Field(default=3, ge=1, le=10)

    @field_validator("country_codes", mode="before")
    @classmethod
    def _empty_str_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class SearchSettings(BaseModel):
    drop_stale_responses: bool = Field(
        default=True,
        description="Discard completion/geocode responses issued for a query the user has moved past.",
    )
    max_sessions: int = Field(default=1000, ge=1)


class RequestLimitSettings(BaseModel):
    max_requests: int = Field(default=10, ge=0)
    interval_seconds: int = Field(default=10, ge=1)


class BotSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PLACEBOT_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__"
    )

    environment: Literal["dev", "staging", "prod"] = "dev"
    telegram_token: SecretStr
    telegram_proxy: str | None = None
    default_language: str = "en"

    geocoder: GeocoderSettings = Field(default_factory=GeocoderSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    request_limit: RequestLimitSettings = Field(default_factory=RequestLimitSettings)


@lru_cache
def get_settings() -> BotSettings:
    """Return cached settings instance."""

    return BotSettings()  # type: ignore[call-arg]


__all__ = [
    "BotSettings",
    "GeocoderSettings",
    "RequestLimitSettings",
    "SearchSettings",
    "get_settings",
]
