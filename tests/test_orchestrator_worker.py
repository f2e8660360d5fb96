from __future__ import annotations

import logging
import signal
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

import allure
import pytest

from region_ingest.orchestrator.executor import BatchJobExecutor
from region_ingest.orchestrator.models import BatchJob, BatchJobCreate, BatchJobStatus, BatchJobType
from region_ingest.orchestrator.processors import MapGenerationProcessor
from region_ingest.orchestrator.repository import BatchJobRepository
from region_ingest.orchestrator.shutdown import ShutdownToken
from region_ingest.orchestrator.state import GENERIC_FAILURE_MESSAGE, BatchJobStateManager
from region_ingest.orchestrator.worker import BatchJobWorker

pytestmark = [
    allure.epic("Batch Jobs"),
    allure.feature("Worker Loop"),
]


def _job(status: BatchJobStatus) -> BatchJob:
    now = datetime(2026, 10, 1, tzinfo=UTC)
    return BatchJob(
        job_id=f"job-{status.value}",
        job_type=BatchJobType.MAP_GENERATION,
        target="Utrecht",
        status=status,
        created_at=now,
        updated_at=now,
    )


class ScriptedExecutor:
    """Pops one outcome per call: a job, ``None`` or an exception to raise."""

    def __init__(self, outcomes: list[object]) -> None:
        self.outcomes = outcomes
        self.calls = 0

    def process_next_job(self, shutdown: ShutdownToken) -> BatchJob | None:
        self.calls += 1
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome  # type: ignore[return-value]


class ScopeFactory:
    def __init__(self, executor: ScriptedExecutor) -> None:
        self.executor = executor
        self.opened = 0
        self.closed = 0

    @contextmanager
    def __call__(self) -> Iterator[ScriptedExecutor]:
        self.opened += 1
        try:
            yield self.executor
        finally:
            self.closed += 1


def _worker(factory: ScopeFactory, poll_interval_seconds: float = 0.0) -> BatchJobWorker:
    return BatchJobWorker(
        scope_factory=factory,
        worker_id="worker-test",
        poll_interval_seconds=poll_interval_seconds,
    )


def _auth_failure() -> RuntimeError:
    try:
        try:
            raise ConnectionError("Login failed for user 'ingest'.")
        except ConnectionError as inner:
            raise RuntimeError("could not open session") from inner
    except RuntimeError as outer:
        return outer


def test_run_counts_outcomes_and_uses_fresh_scope_per_iteration() -> None:
    factory = ScopeFactory(
        ScriptedExecutor(
            [_job(BatchJobStatus.COMPLETED), _job(BatchJobStatus.FAILED), None],
        ),
    )

    summary = _worker(factory).run(ShutdownToken(), max_iterations=3)

    assert summary.iterations == 3
    assert summary.processed == 2
    assert summary.completed == 1
    assert summary.failed == 1
    assert summary.iteration_errors == 0
    assert not summary.stopped_on_fatal_error
    assert factory.opened == factory.closed == 3


def test_transient_failures_are_logged_and_loop_continues(
    caplog: pytest.LogCaptureFixture,
) -> None:
    executor = ScriptedExecutor([RuntimeError("Worker Error"), RuntimeError("again"), None])
    factory = ScopeFactory(executor)

    with caplog.at_level(logging.ERROR, logger="region_ingest.orchestrator.worker"):
        summary = _worker(factory).run(ShutdownToken(), max_iterations=3)

    assert executor.calls == 3
    assert summary.iteration_errors == 2
    assert not summary.stopped_on_fatal_error
    messages = [record.getMessage() for record in caplog.records]
    assert messages.count("Error occurred while processing batch jobs.") == 2
    assert factory.closed == 3


def test_database_auth_failure_stops_worker_permanently(
    caplog: pytest.LogCaptureFixture,
) -> None:
    executor = ScriptedExecutor([_auth_failure(), _job(BatchJobStatus.COMPLETED)])

    with caplog.at_level(logging.CRITICAL, logger="region_ingest.orchestrator.worker"):
        summary = _worker(ScopeFactory(executor)).run(ShutdownToken(), max_iterations=5)

    assert executor.calls == 1
    assert summary.iterations == 1
    assert summary.stopped_on_fatal_error
    assert any(record.levelno == logging.CRITICAL for record in caplog.records)


def test_cancelled_token_prevents_any_iteration() -> None:
    executor = ScriptedExecutor([_job(BatchJobStatus.COMPLETED)])
    shutdown = ShutdownToken()
    shutdown.cancel()

    summary = _worker(ScopeFactory(executor)).run(shutdown)

    assert summary.iterations == 0
    assert executor.calls == 0


def test_shutdown_interrupts_poll_sleep() -> None:
    executor = ScriptedExecutor([])
    shutdown = ShutdownToken()
    timer = threading.Timer(0.2, shutdown.cancel)

    started = time.monotonic()
    timer.start()
    try:
        summary = _worker(ScopeFactory(executor), poll_interval_seconds=30.0).run(shutdown)
    finally:
        timer.cancel()

    assert time.monotonic() - started < 10
    assert summary.iterations == 1
    assert executor.calls == 1


def test_run_once_processes_single_job_and_reports_fatal_stop() -> None:
    ok = _worker(ScopeFactory(ScriptedExecutor([_job(BatchJobStatus.COMPLETED)])))
    summary = ok.run_once(ShutdownToken())
    assert (summary.iterations, summary.processed, summary.completed) == (1, 1, 1)

    fatal = _worker(ScopeFactory(ScriptedExecutor([_auth_failure()])))
    summary = fatal.run_once(ShutdownToken())
    assert summary.stopped_on_fatal_error
    assert summary.iteration_errors == 1


def test_run_forever_restores_signal_handlers() -> None:
    original_sigint = signal.getsignal(signal.SIGINT)
    original_sigterm = signal.getsignal(signal.SIGTERM)

    summary = _worker(ScopeFactory(ScriptedExecutor([None]))).run_forever(max_iterations=1)

    assert summary.iterations == 1
    assert signal.getsignal(signal.SIGINT) is original_sigint
    assert signal.getsignal(signal.SIGTERM) is original_sigterm


class ExplodingCityProcessor:
    job_type = BatchJobType.CITY_INGESTION

    def process(self, job: BatchJob, shutdown: ShutdownToken) -> None:
        raise RuntimeError("neighborhood source returned garbage")


def test_failed_job_does_not_stop_worker_from_claiming_next(
    job_repository: BatchJobRepository,
) -> None:
    failing = job_repository.add(
        BatchJobCreate(job_type=BatchJobType.CITY_INGESTION, target="Utrecht"),
    )
    time.sleep(0.01)
    following = job_repository.add(
        BatchJobCreate(job_type=BatchJobType.MAP_GENERATION, target="Utrecht"),
    )

    @contextmanager
    def _scope() -> Iterator[BatchJobExecutor]:
        yield BatchJobExecutor(
            repository=job_repository,
            state_manager=BatchJobStateManager(job_repository),
            processors=[ExplodingCityProcessor(), MapGenerationProcessor()],
        )

    summary = BatchJobWorker(
        scope_factory=_scope,
        worker_id="worker-test",
        poll_interval_seconds=0.0,
    ).run(ShutdownToken(), max_iterations=2)

    assert summary.iterations == 2
    assert summary.processed == 2
    assert summary.failed == 1
    assert summary.completed == 1
    assert summary.iteration_errors == 0
    assert summary.stopped_on_fatal_error is False

    failed = job_repository.get_by_id(failing.job_id)
    assert failed is not None
    assert failed.status == BatchJobStatus.FAILED
    assert failed.error == GENERIC_FAILURE_MESSAGE
    assert "garbage" not in "".join(failed.execution_log)

    completed = job_repository.get_by_id(following.job_id)
    assert completed is not None
    assert completed.status == BatchJobStatus.COMPLETED
