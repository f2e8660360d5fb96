"""Client contracts consumed by ingestion processors."""

from __future__ import annotations

from typing import Protocol

from region_ingest.enrichment.models import CrimeStats, NeighborhoodGeometry, NeighborhoodStats


class GeoClient(Protocol):
    """Region names and neighborhood geometries."""

    def get_all_municipalities(self) -> list[str]:
        """Return municipality names, sorted and unique."""

    def get_neighborhoods_by_municipality(self, municipality: str) -> list[NeighborhoodGeometry]:
        """Return the neighborhoods inside one municipality."""


class NeighborhoodStatsClient(Protocol):
    def get_stats(self, region_code: str) -> NeighborhoodStats | None:
        """Return demographic statistics for a region code, if published."""


class CrimeStatsClient(Protocol):
    def get_stats(self, region_code: str) -> CrimeStats | None:
        """Return crime statistics for a region code, if published."""
