"""Processor contract and shared checkpoint helpers."""

from __future__ import annotations

import logging
from typing import Protocol

from region_ingest.orchestrator.errors import CancellationSignal
from region_ingest.orchestrator.models import BatchJob, BatchJobStatus, BatchJobType
from region_ingest.orchestrator.repository import JobStore
from region_ingest.orchestrator.shutdown import ShutdownToken

logger = logging.getLogger(__name__)

DEFAULT_CANCELLATION_POLL_INTERVAL = 10
DEFAULT_INGESTION_BATCH_SIZE = 10
MAX_IN_FLIGHT_PROGRESS = 99


class BatchJobProcessor(Protocol):
    """Executes the business work of one job type."""

    @property
    def job_type(self) -> BatchJobType: ...

    def process(self, job: BatchJob, shutdown: ShutdownToken) -> None:
        """Run the job; raising marks it failed, returning lets it complete."""


class CancellationCheckpoint:
    """Per-item checkpoint for host shutdown and operator cancellation.

    Host shutdown is checked on every item; the persisted job status is
    read every ``poll_interval`` items.
    """

    def __init__(
        self,
        repository: JobStore,
        job: BatchJob,
        *,
        poll_interval: int = DEFAULT_CANCELLATION_POLL_INTERVAL,
    ) -> None:
        if poll_interval < 1:
            raise ValueError("poll_interval must be >= 1")
        self.repository = repository
        self.job = job
        self.poll_interval = poll_interval

    def check(self, count: int, shutdown: ShutdownToken) -> bool:
        """Raise on shutdown or cancellation; return True when ``count`` is a poll point."""

        shutdown.raise_if_cancelled()
        if count % self.poll_interval != 0:
            return False

        status = self.repository.get_status(self.job.job_id)
        if status == BatchJobStatus.FAILED:
            logger.info("Batch job %s was cancelled while processing", self.job.job_id)
            raise CancellationSignal()
        return True


def progress_percent(done: int, total: int) -> int:
    """Proportional progress, capped below 100 until the job completes."""

    if total <= 0:
        return 0
    return min(MAX_IN_FLIGHT_PROGRESS, done * 100 // total)
