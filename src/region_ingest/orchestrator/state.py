"""Lifecycle transitions for batch jobs."""

from __future__ import annotations

import logging
from dataclasses import fields, replace

from region_ingest.orchestrator.errors import CANCELLED_BY_USER_MESSAGE
from region_ingest.orchestrator.models import BatchJob, BatchJobStatus
from region_ingest.orchestrator.repository import JobStore
from region_ingest.storage.common import utc_now

logger = logging.getLogger(__name__)

STARTED_MESSAGE = "Job started."
DEFAULT_COMPLETION_MESSAGE = "Job completed successfully."
DEFAULT_FAILURE_MESSAGE = "Job failed."
GENERIC_FAILURE_MESSAGE = "Job failed due to an internal error."


class BatchJobStateManager:
    """Applies started/completed/failed transitions.

    Every transition appends exactly one log line to the in-memory job and
    then performs exactly one store write. Write failures propagate to the
    caller; the log line stays on the job instance either way. A completion
    refused by the store turns into a failure transition.
    """

    def __init__(self, repository: JobStore) -> None:
        self.repository = repository

    def mark_started(self, job: BatchJob) -> None:
        # The claim normally already moved the job to processing.
        if job.status != BatchJobStatus.PROCESSING:
            job.status = BatchJobStatus.PROCESSING
        job.started_at = utc_now()
        job.append_log(STARTED_MESSAGE)
        self.repository.update(job)

    def mark_completed(self, job: BatchJob, message: str | None = None) -> None:
        """Complete the job unless the store already holds a different outcome.

        The completion is staged on a copy so that a refused write leaves no
        success line behind; a job cancelled while finishing is failed with the
        stored cancellation message instead.
        """

        completed = replace(job, status=BatchJobStatus.COMPLETED, completed_at=utc_now())
        completed.set_progress(100)
        completed.append_log(message or DEFAULT_COMPLETION_MESSAGE)
        try:
            self.repository.update(completed)
        except Exception:
            _adopt(job, completed)
            raise

        if completed.status == BatchJobStatus.COMPLETED:
            _adopt(job, completed)
            logger.info("Batch job %s completed: %s", job.job_id, job.result_summary or "-")
            return

        logger.info(
            "Batch job %s finished its work but was already %s",
            job.job_id,
            completed.status.value,
        )
        _adopt(job, completed, keep_log=True)
        if job.status == BatchJobStatus.FAILED:
            job.result_summary = None
            self.mark_failed(job, message=job.error or CANCELLED_BY_USER_MESSAGE)

    def mark_failed(
        self,
        job: BatchJob,
        message: str | None = None,
        error: BaseException | None = None,
    ) -> None:
        """Fail the job.

        With ``error`` the stored message is generic and the exception is only
        logged server-side; otherwise ``message`` is stored verbatim.
        """

        job.status = BatchJobStatus.FAILED
        job.completed_at = utc_now()

        if error is not None:
            job.error = GENERIC_FAILURE_MESSAGE
            logger.error("Batch job %s failed", job.job_id, exc_info=error)
            job.append_log(GENERIC_FAILURE_MESSAGE)
        else:
            job.error = message or DEFAULT_FAILURE_MESSAGE
            logger.info("Batch job %s cancelled/failed: %s", job.job_id, job.error)
            job.append_log(job.error)

        self.repository.update(job)


def _adopt(job: BatchJob, source: BatchJob, *, keep_log: bool = False) -> None:
    for item in fields(BatchJob):
        if keep_log and item.name == "execution_log":
            continue
        setattr(job, item.name, getattr(source, item.name))
