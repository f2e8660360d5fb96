"""Shared test fixtures."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from region_ingest.enrichment.models import CrimeStats, NeighborhoodGeometry, NeighborhoodStats
from region_ingest.neighborhoods.repository import NeighborhoodRepository
from region_ingest.orchestrator.repository import BatchJobRepository


class FakeGeoClient:
    def __init__(
        self,
        *,
        municipalities: list[str] | None = None,
        neighborhoods: dict[str, list[NeighborhoodGeometry]] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.municipalities = municipalities or []
        self.neighborhoods = neighborhoods or {}
        self.error = error
        self.calls: list[str] = []

    def get_all_municipalities(self) -> list[str]:
        self.calls.append("municipalities")
        if self.error is not None:
            raise self.error
        return list(self.municipalities)

    def get_neighborhoods_by_municipality(self, municipality: str) -> list[NeighborhoodGeometry]:
        self.calls.append(municipality)
        if self.error is not None:
            raise self.error
        return list(self.neighborhoods.get(municipality, []))


class FakeStatsClient:
    """Returns a fixed result per code; ``hook`` runs before every lookup."""

    def __init__(
        self,
        result: NeighborhoodStats | CrimeStats | None,
        *,
        failing_codes: frozenset[str] = frozenset(),
        hook: Callable[[str], None] | None = None,
    ) -> None:
        self.result = result
        self.failing_codes = failing_codes
        self.hook = hook
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def get_stats(self, region_code: str):
        with self._lock:
            self.calls.append(region_code)
        if self.hook is not None:
            self.hook(region_code)
        if region_code in self.failing_codes:
            raise RuntimeError(f"upstream unavailable for {region_code}")
        return self.result


def make_geometries(count: int, *, prefix: str = "BU0363") -> list[NeighborhoodGeometry]:
    return [
        NeighborhoodGeometry(
            code=f"{prefix}{index:04d}",
            name=f"Buurt {index}",
            neighborhood_type="Buurt",
        )
        for index in range(count)
    ]


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "region-ingest.db"


@pytest.fixture()
def job_repository(db_path: Path) -> Iterator[BatchJobRepository]:
    repository = BatchJobRepository(db_path)
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()


@pytest.fixture()
def neighborhood_repository(db_path: Path) -> Iterator[NeighborhoodRepository]:
    repository = NeighborhoodRepository(db_path)
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()


@pytest.fixture()
def geo_client_factory() -> type[FakeGeoClient]:
    return FakeGeoClient


@pytest.fixture()
def stats_client_factory() -> type[FakeStatsClient]:
    return FakeStatsClient


@pytest.fixture()
def geometries_factory() -> Callable[..., list[NeighborhoodGeometry]]:
    return make_geometries
