"""Claims one job, runs its processor, and records the outcome."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from region_ingest.orchestrator.errors import (
    CANCELLED_BY_USER_MESSAGE,
    CancellationSignal,
    ProcessorNotFoundError,
    ShutdownRequested,
)
from region_ingest.orchestrator.models import BatchJob, BatchJobStatus, BatchJobType
from region_ingest.orchestrator.processors.base import BatchJobProcessor
from region_ingest.orchestrator.repository import BatchJobRepository
from region_ingest.orchestrator.shutdown import ShutdownToken
from region_ingest.orchestrator.state import BatchJobStateManager

logger = logging.getLogger(__name__)


class BatchJobExecutor:
    """Runs at most one pending job per call.

    Processor failures are recorded on the job and never escape. Only
    store failures during the claim or a lifecycle transition propagate to
    the caller.
    """

    def __init__(
        self,
        *,
        repository: BatchJobRepository,
        state_manager: BatchJobStateManager,
        processors: Iterable[BatchJobProcessor],
    ) -> None:
        self.repository = repository
        self.state_manager = state_manager
        self._processors: dict[BatchJobType, BatchJobProcessor] = {}
        for processor in processors:
            if processor.job_type in self._processors:
                raise ValueError(
                    f"Duplicate processor registered for job type {processor.job_type.value!r}",
                )
            self._processors[processor.job_type] = processor

    @property
    def registered_job_types(self) -> tuple[BatchJobType, ...]:
        return tuple(self._processors)

    def process_next_job(self, shutdown: ShutdownToken) -> BatchJob | None:
        """Claim and run the oldest pending job; return it, or None when idle."""

        job = self.repository.claim_next_pending()
        if job is None:
            return None

        logger.info("Claimed batch job %s (%s %r)", job.job_id, job.job_type.value, job.target)
        self.state_manager.mark_started(job)

        try:
            processor = self._resolve(job.job_type)
            processor.process(job, shutdown)
        except (CancellationSignal, ShutdownRequested) as interrupt:
            self.state_manager.mark_failed(job, message=str(interrupt))
            return job
        except Exception as exc:  # noqa: BLE001
            self.state_manager.mark_failed(job, error=exc)
            return job

        if job.status == BatchJobStatus.PROCESSING:
            self.state_manager.mark_completed(job)
            return job

        # Cancelled after the processor's last status poll.
        logger.info(
            "Batch job %s left processing before completion (%s)",
            job.job_id,
            job.status.value,
        )
        job.result_summary = None
        self.state_manager.mark_failed(job, message=job.error or CANCELLED_BY_USER_MESSAGE)
        return job

    def _resolve(self, job_type: BatchJobType) -> BatchJobProcessor:
        processor = self._processors.get(job_type)
        if processor is None:
            raise ProcessorNotFoundError(f"No processor registered for job type {job_type.value!r}")
        return processor
