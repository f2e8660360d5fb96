"""Exceptions raised by the batch job engine."""

from __future__ import annotations

CANCELLED_BY_USER_MESSAGE = "Job cancelled by user."
SHUTDOWN_MESSAGE = "Job interrupted by worker shutdown."


class BatchJobError(RuntimeError):
    """Base class for batch job domain errors."""


class JobNotFoundError(BatchJobError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Batch job not found: {job_id}")
        self.job_id = job_id


class InvalidJobStateError(BatchJobError):
    """Requested transition is not allowed from the job's current status."""


class ProcessorNotFoundError(BatchJobError):
    """No processor is registered for a job type (configuration error)."""


class IngestionError(BatchJobError):
    """Upstream data could not be fetched for an ingestion job."""


class CancellationSignal(Exception):  # noqa: N818
    """Raised by a processor that observed its job persisted as failed.

    This is the cooperative, store-polled cancellation requested by an
    operator. It is unrelated to host shutdown (see ``ShutdownRequested``).
    """

    def __init__(self, message: str = CANCELLED_BY_USER_MESSAGE) -> None:
        super().__init__(message)


class ShutdownRequested(Exception):  # noqa: N818
    """Raised when the hosting process asked the worker to stop."""

    def __init__(self, message: str = SHUTDOWN_MESSAGE) -> None:
        super().__init__(message)
