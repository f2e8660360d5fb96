"""Typed results returned by data-source clients."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class NeighborhoodGeometry:
    code: str
    name: str
    neighborhood_type: str
    latitude: float = 0.0
    longitude: float = 0.0


@dataclass(slots=True, frozen=True)
class NeighborhoodStats:
    population_density: int | None
    average_woz_value_keur: float | None


@dataclass(slots=True, frozen=True)
class CrimeStats:
    total_crimes_per_1000: int | None
