"""CLI entrypoint for region-ingest."""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from region_ingest import __version__
from region_ingest.orchestrator.controllers import (
    BatchJobCliController,
    DatasetStatusCommand,
    JobCancelCommand,
    JobEnqueueCommand,
    JobInspectCommand,
    JobListCommand,
    JobWorkerCommand,
)
from region_ingest.orchestrator.errors import BatchJobError
from region_ingest.orchestrator.models import BatchJobStatus, BatchJobType
from region_ingest.orchestrator.repository import JOB_SORT_ORDERS

click.rich_click.USE_MARKDOWN = True
JOBS_CONTROLLER = BatchJobCliController()
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

T = TypeVar("T")


@click.group()
@click.version_option(version=__version__, prog_name="region-ingest")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    show_default=True,
    help="Logging level for worker and client diagnostics.",
)
def region_ingest(log_level: str) -> None:
    """Neighborhood dataset ingestion and batch job CLI."""

    logging.basicConfig(level=log_level.upper(), format=LOG_FORMAT)


@region_ingest.group()
def jobs() -> None:
    """Batch job queue and worker commands."""


@jobs.command("enqueue")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--type",
    "job_type",
    type=click.Choice([item.value for item in BatchJobType], case_sensitive=False),
    required=True,
    help="Job type to enqueue.",
)
@click.option(
    "--target",
    default=None,
    help="City name or region; optional for all_cities_ingestion.",
)
def jobs_enqueue(db_path: Path | None, job_type: str, target: str | None) -> None:
    """Add a pending job to the queue."""

    _emit_lines(
        _guarded(
            lambda: JOBS_CONTROLLER.enqueue(
                JobEnqueueCommand(db_path=db_path, job_type=job_type, target=target),
            ),
        ),
    )


@jobs.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--status",
    type=click.Choice([item.value for item in BatchJobStatus], case_sensitive=False),
    default=None,
    help="Optional status filter.",
)
@click.option(
    "--type",
    "job_type",
    type=click.Choice([item.value for item in BatchJobType], case_sensitive=False),
    default=None,
    help="Optional job type filter.",
)
@click.option("--search", default=None, help="Substring match on the job target.")
@click.option(
    "--sort",
    type=click.Choice(sorted(JOB_SORT_ORDERS)),
    default="created_at_desc",
    show_default=True,
    help="Sort order.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=50,
    show_default=True,
    help="Maximum number of jobs to display.",
)
def jobs_list(  # noqa: PLR0913
    db_path: Path | None,
    status: str | None,
    job_type: str | None,
    search: str | None,
    sort: str,
    limit: int,
) -> None:
    """List jobs, newest first by default."""

    _emit_lines(
        _guarded(
            lambda: JOBS_CONTROLLER.list_jobs(
                JobListCommand(
                    db_path=db_path,
                    status=status,
                    job_type=job_type,
                    search=search,
                    sort=sort,
                    limit=limit,
                ),
            ),
        ),
    )


@jobs.command("inspect")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--job-id", required=True, help="Job id to inspect.")
def jobs_inspect(db_path: Path | None, job_id: str) -> None:
    """Show job fields and its full execution log."""

    _emit_lines(
        _guarded(
            lambda: JOBS_CONTROLLER.inspect(JobInspectCommand(db_path=db_path, job_id=job_id)),
        ),
    )


@jobs.command("cancel")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--job-id", required=True, help="Job id to cancel.")
def jobs_cancel(db_path: Path | None, job_id: str) -> None:
    """Cancel a pending or processing job."""

    _emit_lines(
        _guarded(
            lambda: JOBS_CONTROLLER.cancel(JobCancelCommand(db_path=db_path, job_id=job_id)),
        ),
    )


@jobs.command("worker")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--once/--loop",
    default=True,
    show_default=True,
    help="Run one claim-execute cycle or poll until interrupted.",
)
@click.option(
    "--max-iterations",
    type=click.IntRange(min=1),
    default=None,
    help="Optional cap for polling iterations in loop mode.",
)
def jobs_worker(db_path: Path | None, once: bool, max_iterations: int | None) -> None:
    """Run the batch job worker."""

    result = _guarded(
        lambda: JOBS_CONTROLLER.run_worker(
            JobWorkerCommand(db_path=db_path, once=once, max_iterations=max_iterations),
        ),
    )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Worker stopped on a fatal infrastructure failure.")


@region_ingest.group()
def datasets() -> None:
    """Neighborhood dataset commands."""


@datasets.command("status")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def datasets_status(db_path: Path | None) -> None:
    """Show neighborhood count and last refresh per city."""

    _emit_lines(
        _guarded(lambda: JOBS_CONTROLLER.dataset_status(DatasetStatusCommand(db_path=db_path))),
    )


def _guarded(action: Callable[[], T]) -> T:
    try:
        return action()
    except (ValueError, BatchJobError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    region_ingest()
