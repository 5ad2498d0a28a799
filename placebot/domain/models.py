"""Pydantic models shared across service and bot layers."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class Suggestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    subtitle: str = ""


class Placemark(BaseModel):
    model_config = ConfigDict(frozen=True)

    country: str | None = None
    postal_code: str | None = None
    administrative_area: str | None = None
    locality: str | None = None
    thoroughfare: str | None = None
    sub_thoroughfare: str | None = None
    longitude: float | None = None
    latitude: float | None = None


__all__ = [
    "Placemark",
    "Suggestion",
]
