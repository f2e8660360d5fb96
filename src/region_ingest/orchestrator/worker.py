"""Polling worker that drains the batch job queue one job at a time."""

from __future__ import annotations

import logging
import signal
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass

from region_ingest.orchestrator.executor import BatchJobExecutor
from region_ingest.orchestrator.failure_classifier import classify_worker_failure
from region_ingest.orchestrator.models import BatchJobStatus
from region_ingest.orchestrator.shutdown import ShutdownToken

logger = logging.getLogger(__name__)

ExecutorScopeFactory = Callable[[], AbstractContextManager[BatchJobExecutor]]


@dataclass(slots=True)
class WorkerRunSummary:
    """Aggregate worker counters for CLI reporting."""

    iterations: int = 0
    processed: int = 0
    completed: int = 0
    failed: int = 0
    iteration_errors: int = 0
    stopped_on_fatal_error: bool = False


class BatchJobWorker:
    """Runs ``process_next_job`` in a loop with a fresh executor scope each time.

    Exceptions escaping an iteration are classified: transient ones are
    logged and the loop carries on after the usual sleep, infrastructure
    fatal ones stop the loop for good.
    """

    def __init__(
        self,
        *,
        scope_factory: ExecutorScopeFactory,
        worker_id: str,
        poll_interval_seconds: float = 10.0,
    ) -> None:
        self.scope_factory = scope_factory
        self.worker_id = worker_id
        self.poll_interval_seconds = poll_interval_seconds

    def run_once(self, shutdown: ShutdownToken) -> WorkerRunSummary:
        """Process at most one job; iteration failures are classified, not raised."""

        summary = WorkerRunSummary()
        if shutdown.is_cancelled:
            return summary
        summary.iterations = 1
        if not self._iterate(shutdown, summary):
            summary.stopped_on_fatal_error = True
        return summary

    def run(
        self,
        shutdown: ShutdownToken,
        *,
        max_iterations: int | None = None,
    ) -> WorkerRunSummary:
        """Poll until shutdown, a fatal failure, or ``max_iterations`` is reached."""

        summary = WorkerRunSummary()
        logger.info("Batch job worker %s started", self.worker_id)
        while not shutdown.is_cancelled:
            if max_iterations is not None and summary.iterations >= max_iterations:
                break

            summary.iterations += 1
            should_continue = self._iterate(shutdown, summary)
            if not should_continue:
                summary.stopped_on_fatal_error = True
                break

            if max_iterations is not None and summary.iterations >= max_iterations:
                break
            if shutdown.wait(self.poll_interval_seconds):
                break

        logger.info(
            "Batch job worker %s stopped: iterations=%s processed=%s errors=%s fatal=%s",
            self.worker_id,
            summary.iterations,
            summary.processed,
            summary.iteration_errors,
            summary.stopped_on_fatal_error,
        )
        return summary

    def run_forever(self, *, max_iterations: int | None = None) -> WorkerRunSummary:
        """Like :meth:`run`, with SIGINT/SIGTERM wired to a fresh shutdown token."""

        shutdown = ShutdownToken()
        with self._signal_handlers(shutdown):
            return self.run(shutdown, max_iterations=max_iterations)

    def _iterate(self, shutdown: ShutdownToken, summary: WorkerRunSummary) -> bool:
        """Run one iteration; return False when the worker must stop permanently."""

        try:
            with self.scope_factory() as executor:
                job = executor.process_next_job(shutdown)
        except Exception as exc:  # noqa: BLE001
            summary.iteration_errors += 1
            classification = classify_worker_failure(exc)
            if classification.should_stop:
                logger.critical(
                    "Critical infrastructure failure; batch job worker %s is stopping: %s",
                    self.worker_id,
                    classification.to_log_details(),
                    exc_info=exc,
                )
                return False
            logger.error("Error occurred while processing batch jobs.", exc_info=exc)
            return True

        if job is not None:
            summary.processed += 1
            if job.status == BatchJobStatus.COMPLETED:
                summary.completed += 1
            elif job.status == BatchJobStatus.FAILED:
                summary.failed += 1
        return True

    @contextmanager
    def _signal_handlers(self, shutdown: ShutdownToken) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            logger.info("Batch job worker %s received %s; shutting down", self.worker_id, name)
            shutdown.cancel(reason=name)

        installed = False
        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
            installed = True
        except ValueError:
            # Signal handlers can only be installed in main thread.
            pass

        try:
            yield
        finally:
            if installed:
                signal.signal(signal.SIGINT, original_sigint)
                signal.signal(signal.SIGTERM, original_sigterm)
