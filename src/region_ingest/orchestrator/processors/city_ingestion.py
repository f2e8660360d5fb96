"""Per-city neighborhood ingestion processor."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

from region_ingest.enrichment.base import CrimeStatsClient, GeoClient, NeighborhoodStatsClient
from region_ingest.enrichment.models import CrimeStats, NeighborhoodGeometry, NeighborhoodStats
from region_ingest.neighborhoods.models import NeighborhoodRecord
from region_ingest.neighborhoods.repository import NeighborhoodRepository
from region_ingest.orchestrator.errors import IngestionError
from region_ingest.orchestrator.models import BatchJob, BatchJobType
from region_ingest.orchestrator.processors.base import (
    DEFAULT_CANCELLATION_POLL_INTERVAL,
    DEFAULT_INGESTION_BATCH_SIZE,
    CancellationCheckpoint,
    progress_percent,
)
from region_ingest.orchestrator.repository import JobStore
from region_ingest.orchestrator.shutdown import ShutdownToken
from region_ingest.storage.common import utc_now

logger = logging.getLogger(__name__)

NO_NEIGHBORHOODS_MESSAGE = "No neighborhoods found for city."
WOZ_KEUR_MULTIPLIER = 1000


class CityIngestionProcessor:
    """Fetches, enriches and upserts every neighborhood of ``job.target``.

    Per neighborhood the statistics and crime lookups run concurrently on a
    two-thread pool; both must succeed. Records are written in batches of
    ``batch_size`` through one ``save_changes`` call each.
    """

    job_type = BatchJobType.CITY_INGESTION

    def __init__(  # noqa: PLR0913
        self,
        *,
        repository: JobStore,
        neighborhoods: NeighborhoodRepository,
        geo_client: GeoClient,
        stats_client: NeighborhoodStatsClient,
        crime_client: CrimeStatsClient,
        batch_size: int = DEFAULT_INGESTION_BATCH_SIZE,
        cancellation_poll_interval: int = DEFAULT_CANCELLATION_POLL_INTERVAL,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.repository = repository
        self.neighborhoods = neighborhoods
        self.geo_client = geo_client
        self.stats_client = stats_client
        self.crime_client = crime_client
        self.batch_size = batch_size
        self.cancellation_poll_interval = cancellation_poll_interval

    def process(self, job: BatchJob, shutdown: ShutdownToken) -> None:
        shutdown.raise_if_cancelled()
        city = job.target
        job.append_log(f"Processing city ingestion for {city}")
        self.repository.update(job)

        try:
            geometries = self.geo_client.get_neighborhoods_by_municipality(city)
        except Exception as exc:
            raise IngestionError(f"Failed to fetch neighborhoods for city '{city}'") from exc

        if not geometries:
            job.result_summary = NO_NEIGHBORHOODS_MESSAGE
            job.append_log(NO_NEIGHBORHOODS_MESSAGE)
            return

        existing = {record.code: record for record in self.neighborhoods.get_by_city(city)}
        checkpoint = CancellationCheckpoint(
            self.repository,
            job,
            poll_interval=self.cancellation_poll_interval,
        )
        total = len(geometries)
        to_add: list[NeighborhoodRecord] = []
        to_update: list[NeighborhoodRecord] = []

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="stats") as pool:
            for count, geometry in enumerate(geometries):
                checkpoint.check(count, shutdown)

                record = existing.get(geometry.code)
                is_new = record is None
                if record is None:
                    record = NeighborhoodRecord(
                        code=geometry.code,
                        name=geometry.name,
                        city=city,
                        neighborhood_type=geometry.neighborhood_type,
                    )
                    # Later duplicates of this code in the same run merge into it.
                    existing[geometry.code] = record

                stats, crime = self._fetch_stats(pool, geometry, city)
                _apply_geometry(record, geometry)
                _apply_stats(record, stats, crime)

                if is_new:
                    to_add.append(record)
                elif record.record_id is not None and all(
                    item is not record for item in to_update
                ):
                    to_update.append(record)

                processed = count + 1
                if processed % self.batch_size == 0 or processed == total:
                    self._flush(to_add, to_update)
                    to_add = []
                    to_update = []
                    job.set_progress(progress_percent(processed, total))
                    job.append_log(f"Processed {processed}/{total} neighborhoods.")
                    self.repository.update(job)

        logger.info("Batch job %s ingested %s neighborhoods for %s", job.job_id, total, city)
        job.result_summary = f"Processed {total} neighborhoods."
        job.append_log(job.result_summary)

    def _fetch_stats(
        self,
        pool: ThreadPoolExecutor,
        geometry: NeighborhoodGeometry,
        city: str,
    ) -> tuple[NeighborhoodStats | None, CrimeStats | None]:
        stats_future = pool.submit(self.stats_client.get_stats, geometry.code)
        crime_future = pool.submit(self.crime_client.get_stats, geometry.code)
        try:
            # Wait for both so no request outlives a failed sibling.
            stats_error = stats_future.exception()
            crime_error = crime_future.exception()
            if stats_error is not None:
                raise stats_error
            if crime_error is not None:
                raise crime_error
            return stats_future.result(), crime_future.result()
        except Exception as exc:
            raise IngestionError(
                f"Failed to fetch stats for neighborhood '{geometry.code}' in city '{city}'",
            ) from exc

    def _flush(self, to_add: list[NeighborhoodRecord], to_update: list[NeighborhoodRecord]) -> None:
        if to_add:
            self.neighborhoods.add_range(to_add)
        if to_update:
            self.neighborhoods.update_range(to_update)
        if to_add or to_update:
            self.neighborhoods.save_changes()


def _apply_geometry(record: NeighborhoodRecord, geometry: NeighborhoodGeometry) -> None:
    record.name = geometry.name
    record.neighborhood_type = geometry.neighborhood_type
    record.latitude = geometry.latitude
    record.longitude = geometry.longitude


def _apply_stats(
    record: NeighborhoodRecord,
    stats: NeighborhoodStats | None,
    crime: CrimeStats | None,
) -> None:
    # Missing statistics clear previously stored values.
    density = stats.population_density if stats is not None else None
    woz_keur = stats.average_woz_value_keur if stats is not None else None
    record.population_density = density
    record.average_woz_value = woz_keur * WOZ_KEUR_MULTIPLIER if woz_keur is not None else None
    record.crime_rate = crime.total_crimes_per_1000 if crime is not None else None
    record.last_updated = utc_now()
