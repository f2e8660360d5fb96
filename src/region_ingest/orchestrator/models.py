"""Domain models for the batch job queue and its execution."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from region_ingest.storage.common import utc_now

LOG_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class BatchJobStatus(str, Enum):
    """Durable job lifecycle states."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (BatchJobStatus.COMPLETED, BatchJobStatus.FAILED)


class BatchJobType(str, Enum):
    """Job type tags; each one selects exactly one processor."""

    CITY_INGESTION = "city_ingestion"
    ALL_CITIES_INGESTION = "all_cities_ingestion"
    MAP_GENERATION = "map_generation"


class WorkerFailureClass(str, Enum):
    """Failure classes used by the worker stop policy."""

    TRANSIENT = "transient"
    INFRASTRUCTURE_FATAL = "infrastructure_fatal"


@dataclass(slots=True)
class BatchJobCreate:
    """Input payload for enqueuing a batch job."""

    job_type: BatchJobType
    target: str
    job_id: str | None = None


@dataclass(slots=True)
class BatchJob:
    """In-memory job instance mutated by the executor and processors.

    ``execution_log`` is a tuple: entries can only be added through
    :meth:`append_log`, never removed or reordered.
    """

    job_id: str
    job_type: BatchJobType
    target: str
    status: BatchJobStatus
    created_at: datetime
    updated_at: datetime
    progress: int = 0
    error: str | None = None
    result_summary: str | None = None
    execution_log: tuple[str, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def append_log(self, message: str, *, now: datetime | None = None) -> str:
        """Append one timestamped line and return it."""

        entry = format_log_entry(message, now=now or utc_now())
        self.execution_log = (*self.execution_log, entry)
        return entry

    def set_progress(self, value: int) -> None:
        """Raise progress to ``value`` (clamped to 0..100); never lowers it."""

        bounded = max(0, min(100, value))
        if bounded > self.progress:
            self.progress = bounded


def format_log_entry(message: str, *, now: datetime) -> str:
    flattened = " ".join(message.splitlines()) if message else ""
    return f"[{now.strftime(LOG_TIMESTAMP_FORMAT)}] {flattened}"


def serialize_execution_log(entries: tuple[str, ...]) -> str | None:
    if not entries:
        return None
    return "\n".join(entries)


def parse_execution_log(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(value.split("\n"))
