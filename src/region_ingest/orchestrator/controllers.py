"""Controllers for batch job CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from pathlib import Path

from region_ingest.config import Settings
from region_ingest.enrichment.cbs import CbsCrimeStatsClient, CbsNeighborhoodStatsClient
from region_ingest.enrichment.pdok import PdokGeoClient
from region_ingest.http.fetcher import JsonFetcher
from region_ingest.neighborhoods.repository import NeighborhoodRepository
from region_ingest.orchestrator.executor import BatchJobExecutor
from region_ingest.orchestrator.models import BatchJob, BatchJobStatus, BatchJobType
from region_ingest.orchestrator.processors import (
    AllCitiesIngestionProcessor,
    BatchJobProcessor,
    CityIngestionProcessor,
    MapGenerationProcessor,
)
from region_ingest.orchestrator.repository import BatchJobRepository
from region_ingest.orchestrator.services import BatchJobService
from region_ingest.orchestrator.shutdown import ShutdownToken
from region_ingest.orchestrator.state import BatchJobStateManager
from region_ingest.orchestrator.worker import BatchJobWorker, WorkerRunSummary
from region_ingest.storage.alembic_runner import upgrade_head


@dataclass(slots=True)
class JobEnqueueCommand:
    """CLI input for job enqueue."""

    db_path: Path | None
    job_type: str
    target: str | None


@dataclass(slots=True)
class JobListCommand:
    """CLI input for job listing."""

    db_path: Path | None
    status: str | None
    job_type: str | None
    search: str | None
    sort: str
    limit: int


@dataclass(slots=True)
class JobInspectCommand:
    db_path: Path | None
    job_id: str


@dataclass(slots=True)
class JobCancelCommand:
    db_path: Path | None
    job_id: str


@dataclass(slots=True)
class JobWorkerCommand:
    """CLI input for worker execution."""

    db_path: Path | None
    once: bool
    max_iterations: int | None


@dataclass(slots=True)
class DatasetStatusCommand:
    db_path: Path | None


@dataclass(slots=True)
class WorkerCommandResult:
    """Worker report to render in CLI."""

    lines: list[str]
    success: bool


class BatchJobCliController:
    """Coordinates queue, worker, and inspection CLI operations."""

    def enqueue(self, command: JobEnqueueCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        job_type = _parse_job_type(command.job_type)
        with _repository(settings) as repository:
            job = BatchJobService(repository).enqueue(job_type, command.target)
        return [
            "Job enqueued: "
            f"job_id={job.job_id} type={job.job_type.value} "
            f"target={job.target or '-'} status={job.status.value}",
        ]

    def list_jobs(self, command: JobListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        status = _parse_status(command.status) if command.status is not None else None
        job_type = _parse_job_type(command.job_type) if command.job_type is not None else None
        with _repository(settings) as repository:
            service = BatchJobService(repository)
            jobs = service.list_jobs(
                status=status,
                job_type=job_type,
                search=command.search,
                sort=command.sort,
                limit=command.limit,
            )
            counts = service.queue_counts()

        lines = [
            "Queue: " + " ".join(f"{item.value}={counts[item]}" for item in BatchJobStatus),
        ]
        if not jobs:
            lines.append("No jobs found.")
            return lines
        lines.extend(_job_row(job) for job in jobs)
        return lines

    def inspect(self, command: JobInspectCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            job = BatchJobService(repository).get_job(command.job_id)

        lines = [
            f"Job: {job.job_id}",
            f"Type: {job.job_type.value}",
            f"Target: {job.target or '-'}",
            f"Status: {job.status.value}",
            f"Progress: {job.progress}%",
            f"Error: {job.error or '-'}",
            f"Result: {job.result_summary or '-'}",
            f"Created: {job.created_at.isoformat()}",
            f"Started: {job.started_at.isoformat() if job.started_at else '-'}",
            f"Completed: {job.completed_at.isoformat() if job.completed_at else '-'}",
            f"Log entries: {len(job.execution_log)}",
        ]
        lines.extend(f"  {entry}" for entry in job.execution_log)
        return lines

    def cancel(self, command: JobCancelCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            job = BatchJobService(repository).cancel(command.job_id)
        return [f"Job cancelled: {job.job_id} status={job.status.value}"]

    def run_worker(self, command: JobWorkerCommand) -> WorkerCommandResult:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate()
        upgrade_head(settings.db_path)

        worker = BatchJobWorker(
            scope_factory=lambda: _executor_scope(settings),
            worker_id=settings.worker.worker_id,
            poll_interval_seconds=settings.worker.poll_interval_seconds,
        )
        summary = (
            worker.run_once(ShutdownToken())
            if command.once
            else worker.run_forever(max_iterations=command.max_iterations)
        )
        return WorkerCommandResult(
            lines=[_render_worker_summary(summary)],
            success=not summary.stopped_on_fatal_error,
        )

    def dataset_status(self, command: DatasetStatusCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _neighborhoods(settings) as neighborhoods:
            statuses = neighborhoods.list_dataset_status()

        if not statuses:
            return ["No neighborhood datasets ingested yet."]
        return [
            f"{status.city}: neighborhoods={status.neighborhood_count} "
            f"last_updated={status.last_updated.isoformat() if status.last_updated else '-'}"
            for status in statuses
        ]


def build_processors(
    settings: Settings,
    *,
    repository: BatchJobRepository,
    neighborhoods: NeighborhoodRepository,
    geo_client: PdokGeoClient,
    stats_client: CbsNeighborhoodStatsClient,
    crime_client: CbsCrimeStatsClient,
) -> list[BatchJobProcessor]:
    return [
        CityIngestionProcessor(
            repository=repository,
            neighborhoods=neighborhoods,
            geo_client=geo_client,
            stats_client=stats_client,
            crime_client=crime_client,
            batch_size=settings.jobs.ingestion_batch_size,
            cancellation_poll_interval=settings.jobs.cancellation_poll_interval,
        ),
        AllCitiesIngestionProcessor(
            repository=repository,
            geo_client=geo_client,
            cancellation_poll_interval=settings.jobs.cancellation_poll_interval,
        ),
        MapGenerationProcessor(),
    ]


@contextmanager
def _executor_scope(settings: Settings) -> Iterator[BatchJobExecutor]:
    """One executor with its own repositories and HTTP clients, closed on exit."""

    with ExitStack() as stack:
        repository = BatchJobRepository(
            db_path=settings.db_path,
            sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
        )
        stack.callback(repository.close)
        neighborhoods = NeighborhoodRepository(
            db_path=settings.db_path,
            sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
        )
        stack.callback(neighborhoods.close)

        geo_client = stack.enter_context(
            PdokGeoClient(wfs_url=settings.enrichment.pdok_wfs_url, fetcher=_fetcher(settings)),
        )
        stats_client = stack.enter_context(
            CbsNeighborhoodStatsClient(
                base_url=settings.enrichment.cbs_base_url,
                fetcher=_fetcher(settings),
            ),
        )
        crime_client = stack.enter_context(
            CbsCrimeStatsClient(
                base_url=settings.enrichment.cbs_base_url,
                fetcher=_fetcher(settings),
            ),
        )

        yield BatchJobExecutor(
            repository=repository,
            state_manager=BatchJobStateManager(repository),
            processors=build_processors(
                settings,
                repository=repository,
                neighborhoods=neighborhoods,
                geo_client=geo_client,
                stats_client=stats_client,
                crime_client=crime_client,
            ),
        )


def _fetcher(settings: Settings) -> JsonFetcher:
    return JsonFetcher(
        timeout_seconds=settings.enrichment.request_timeout_seconds,
        max_retries=settings.enrichment.max_retries,
    )


@contextmanager
def _repository(settings: Settings) -> Iterator[BatchJobRepository]:
    repository = BatchJobRepository(
        db_path=settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()


@contextmanager
def _neighborhoods(settings: Settings) -> Iterator[NeighborhoodRepository]:
    repository = NeighborhoodRepository(
        db_path=settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()


def _parse_job_type(value: str) -> BatchJobType:
    try:
        return BatchJobType(value.strip().lower())
    except ValueError as error:
        raise ValueError(f"Unsupported job type: {value!r}") from error


def _parse_status(value: str) -> BatchJobStatus:
    try:
        return BatchJobStatus(value.strip().lower())
    except ValueError as error:
        raise ValueError(f"Unsupported job status: {value!r}") from error


def _job_row(job: BatchJob) -> str:
    return (
        f"{job.job_id} type={job.job_type.value} target={job.target or '-'} "
        f"status={job.status.value} progress={job.progress}% "
        f"created_at={job.created_at.isoformat()}"
    )


def _render_worker_summary(summary: WorkerRunSummary) -> str:
    return (
        "Worker summary: "
        f"iterations={summary.iterations} processed={summary.processed} "
        f"completed={summary.completed} failed={summary.failed} "
        f"iteration_errors={summary.iteration_errors} "
        f"stopped_on_fatal_error={str(summary.stopped_on_fatal_error).lower()}"
    )
