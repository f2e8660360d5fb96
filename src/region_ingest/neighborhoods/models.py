"""Neighborhood dataset models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True)
class NeighborhoodRecord:
    """One neighborhood of a city; ``(city, code)`` is the natural key.

    ``record_id`` is ``None`` until the record has been saved.
    """

    code: str
    name: str
    city: str
    neighborhood_type: str
    latitude: float = 0.0
    longitude: float = 0.0
    population_density: float | None = None
    average_woz_value: float | None = None
    crime_rate: float | None = None
    last_updated: datetime | None = None
    record_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class SaveChangesResult:
    added: int
    updated: int

    @property
    def total(self) -> int:
        return self.added + self.updated


@dataclass(slots=True)
class DatasetStatus:
    """Per-city neighborhood dataset freshness."""

    city: str
    neighborhood_count: int
    last_updated: datetime | None
