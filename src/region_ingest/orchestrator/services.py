"""Operator use cases for the batch job queue."""

from __future__ import annotations

import logging

from region_ingest.orchestrator.errors import CANCELLED_BY_USER_MESSAGE, JobNotFoundError
from region_ingest.orchestrator.models import BatchJob, BatchJobCreate, BatchJobStatus, BatchJobType
from region_ingest.orchestrator.repository import BatchJobRepository

logger = logging.getLogger(__name__)

# Job types whose target may be left empty.
_TARGETLESS_JOB_TYPES = frozenset({BatchJobType.ALL_CITIES_INGESTION})


class BatchJobService:
    """Enqueue, list, inspect and cancel batch jobs."""

    def __init__(self, repository: BatchJobRepository) -> None:
        self.repository = repository

    def enqueue(self, job_type: BatchJobType, target: str | None = None) -> BatchJob:
        normalized = (target or "").strip()
        if not normalized and job_type not in _TARGETLESS_JOB_TYPES:
            raise ValueError(f"A target is required for {job_type.value} jobs.")

        job = self.repository.add(BatchJobCreate(job_type=job_type, target=normalized))
        logger.info("Enqueued batch job %s (%s %r)", job.job_id, job.job_type.value, job.target)
        return job

    def list_jobs(  # noqa: PLR0913
        self,
        *,
        status: BatchJobStatus | None = None,
        job_type: BatchJobType | None = None,
        search: str | None = None,
        sort: str = "created_at_desc",
        limit: int = 50,
        offset: int = 0,
    ) -> list[BatchJob]:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        return self.repository.list_jobs(
            status=status,
            job_type=job_type,
            search=search,
            sort=sort,
            limit=limit,
            offset=offset,
        )

    def get_job(self, job_id: str) -> BatchJob:
        job = self.repository.get_by_id(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def cancel(self, job_id: str) -> BatchJob:
        job = self.repository.cancel(job_id, message=CANCELLED_BY_USER_MESSAGE)
        logger.info("Batch job %s cancelled by operator", job_id)
        return job

    def queue_counts(self) -> dict[BatchJobStatus, int]:
        return self.repository.count_by_status()
