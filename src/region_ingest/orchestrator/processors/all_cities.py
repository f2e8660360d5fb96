"""Fan-out processor: one city ingestion job per municipality."""

from __future__ import annotations

import logging

from region_ingest.enrichment.base import GeoClient
from region_ingest.orchestrator.models import BatchJob, BatchJobCreate, BatchJobType
from region_ingest.orchestrator.processors.base import (
    DEFAULT_CANCELLATION_POLL_INTERVAL,
    CancellationCheckpoint,
    progress_percent,
)
from region_ingest.orchestrator.repository import JobStore
from region_ingest.orchestrator.shutdown import ShutdownToken

logger = logging.getLogger(__name__)

NO_MUNICIPALITIES_MESSAGE = "No municipalities found."


class AllCitiesIngestionProcessor:
    """Enqueues a ``city_ingestion`` child for every municipality.

    Children are independent pending jobs. Children created before a
    cancellation stay queued.
    """

    job_type = BatchJobType.ALL_CITIES_INGESTION

    def __init__(
        self,
        *,
        repository: JobStore,
        geo_client: GeoClient,
        cancellation_poll_interval: int = DEFAULT_CANCELLATION_POLL_INTERVAL,
    ) -> None:
        self.repository = repository
        self.geo_client = geo_client
        self.cancellation_poll_interval = cancellation_poll_interval

    def process(self, job: BatchJob, shutdown: ShutdownToken) -> None:
        shutdown.raise_if_cancelled()
        job.append_log("Fetching all municipalities from CBS...")
        self.repository.update(job)

        municipalities = self.geo_client.get_all_municipalities()
        if not municipalities:
            job.result_summary = NO_MUNICIPALITIES_MESSAGE
            job.append_log(NO_MUNICIPALITIES_MESSAGE)
            return

        total = len(municipalities)
        job.append_log(f"Found {total} municipalities. Queueing jobs...")
        self.repository.update(job)

        checkpoint = CancellationCheckpoint(
            self.repository,
            job,
            poll_interval=self.cancellation_poll_interval,
        )
        for count, municipality in enumerate(municipalities):
            if checkpoint.check(count, shutdown) and count > 0:
                job.set_progress(progress_percent(count, total))
                self.repository.update(job)

            self.repository.add(
                BatchJobCreate(job_type=BatchJobType.CITY_INGESTION, target=municipality),
            )

        logger.info("Batch job %s queued %s city ingestion jobs", job.job_id, total)
        job.result_summary = f"Queued ingestion for {total} municipalities."
        job.append_log(f"Successfully queued {total} jobs.")
