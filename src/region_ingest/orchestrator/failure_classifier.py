"""Worker failure classification for the polling loop stop policy."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

from region_ingest.orchestrator.models import WorkerFailureClass

WORKER_FAILURE_CLASSIFIER_VERSION = 1

# Matched case-insensitively against every message in the exception chain.
_DATABASE_AUTH_FAILURE_PATTERNS: tuple[str, ...] = ("login failed for user",)


@dataclass(slots=True)
class WorkerFailureClassification:
    """Normalized classification of an exception that escaped one iteration."""

    failure_class: WorkerFailureClass
    reason_code: str
    matched_pattern: str | None
    chain_depth: int | None

    @property
    def should_stop(self) -> bool:
        return self.failure_class == WorkerFailureClass.INFRASTRUCTURE_FATAL

    def to_log_details(self) -> dict[str, object]:
        return {
            "classifier_version": WORKER_FAILURE_CLASSIFIER_VERSION,
            "failure_class": self.failure_class.value,
            "reason_code": self.reason_code,
            "matched_pattern": self.matched_pattern,
            "chain_depth": self.chain_depth,
        }


def classify_worker_failure(error: BaseException) -> WorkerFailureClassification:
    """Classify an iteration failure as transient or fatal for the worker."""

    match = _match_database_auth_failure(error)
    if match is not None:
        depth, pattern = match
        return WorkerFailureClassification(
            failure_class=WorkerFailureClass.INFRASTRUCTURE_FATAL,
            reason_code="database_auth_failed",
            matched_pattern=pattern,
            chain_depth=depth,
        )
    return WorkerFailureClassification(
        failure_class=WorkerFailureClass.TRANSIENT,
        reason_code="iteration_failed",
        matched_pattern=None,
        chain_depth=None,
    )


def is_database_auth_failure(error: BaseException) -> bool:
    """Return True when any exception in the chain is a database login failure."""

    return _match_database_auth_failure(error) is not None


def iter_exception_chain(error: BaseException) -> Iterator[BaseException]:
    """Yield ``error`` and its causes, preferring ``__cause__`` over ``__context__``."""

    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ if current.__cause__ is not None else current.__context__


def _match_database_auth_failure(error: BaseException) -> tuple[int, str] | None:
    for depth, link in enumerate(iter_exception_chain(error)):
        message = str(link).lower()
        for pattern in _DATABASE_AUTH_FAILURE_PATTERNS:
            if pattern in message:
                return depth, pattern
    return None
