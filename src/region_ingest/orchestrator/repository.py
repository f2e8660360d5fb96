"""Persistent job store for the batch job queue."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol
from uuid import uuid4

from sqlalchemy import or_
from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from region_ingest.orchestrator.errors import (
    CANCELLED_BY_USER_MESSAGE,
    InvalidJobStateError,
    JobNotFoundError,
)
from region_ingest.orchestrator.models import (
    BatchJob,
    BatchJobCreate,
    BatchJobStatus,
    BatchJobType,
    format_log_entry,
    parse_execution_log,
    serialize_execution_log,
)
from region_ingest.storage.alembic_runner import upgrade_head
from region_ingest.storage.common import (
    DEFAULT_BUSY_TIMEOUT_MS,
    build_sqlite_engine,
    to_db_datetime,
    to_optional_db_datetime,
    to_optional_utc_aware_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from region_ingest.storage.sqlmodel_models import BatchJobRow

logger = logging.getLogger(__name__)

_TERMINAL_STATUS_VALUES = (BatchJobStatus.COMPLETED.value, BatchJobStatus.FAILED.value)

JOB_SORT_ORDERS = {
    "created_at_asc": (col(BatchJobRow.created_at).asc(),),
    "created_at_desc": (col(BatchJobRow.created_at).desc(),),
    "status_asc": (col(BatchJobRow.status).asc(), col(BatchJobRow.created_at).desc()),
    "status_desc": (col(BatchJobRow.status).desc(), col(BatchJobRow.created_at).desc()),
    "type_asc": (col(BatchJobRow.job_type).asc(), col(BatchJobRow.created_at).desc()),
    "type_desc": (col(BatchJobRow.job_type).desc(), col(BatchJobRow.created_at).desc()),
    "target_asc": (col(BatchJobRow.target).asc(), col(BatchJobRow.created_at).desc()),
    "target_desc": (col(BatchJobRow.target).desc(), col(BatchJobRow.created_at).desc()),
}


class JobStore(Protocol):
    """Job store operations used by the state manager and processors."""

    def add(self, payload: BatchJobCreate) -> BatchJob: ...

    def get_status(self, job_id: str) -> BatchJobStatus | None: ...

    def update(self, job: BatchJob) -> None: ...


class BatchJobRepository:
    """Queue persistence facade backed by SQLModel + SQLite."""

    def __init__(
        self,
        db_path: Path,
        *,
        sqlite_busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
    ) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    def add(self, payload: BatchJobCreate) -> BatchJob:
        """Persist a new pending job and return it with its assigned id."""

        now = utc_now()
        with Session(self.engine) as session:
            row = BatchJobRow(
                job_id=payload.job_id or str(uuid4()),
                job_type=payload.job_type.value,
                target=payload.target,
                status=BatchJobStatus.PENDING.value,
                progress=0,
                created_at=to_db_datetime(now),
                updated_at=to_db_datetime(now),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_job(row)

    def get_by_id(self, job_id: str) -> BatchJob | None:
        with Session(self.engine) as session:
            row = session.get(BatchJobRow, job_id)
            return _to_job(row) if row is not None else None

    def get_status(self, job_id: str) -> BatchJobStatus | None:
        """Status-only read used by the cooperative cancellation poll."""

        with Session(self.engine) as session:
            status = session.exec(
                select(BatchJobRow.status).where(BatchJobRow.job_id == job_id),
            ).one_or_none()
        return BatchJobStatus(status) if status is not None else None

    def claim_next_pending(self) -> BatchJob | None:
        """Atomically claim the oldest pending job (pending -> processing)."""

        while True:
            now = utc_now()
            with Session(self.engine) as session:
                candidate = session.exec(
                    select(BatchJobRow)
                    .where(BatchJobRow.status == BatchJobStatus.PENDING.value)
                    .order_by(col(BatchJobRow.created_at).asc())
                    .limit(1),
                ).one_or_none()
                if candidate is None:
                    return None

                result = session.exec(
                    sa_update(BatchJobRow)
                    .where(
                        col(BatchJobRow.job_id) == candidate.job_id,
                        col(BatchJobRow.status) == BatchJobStatus.PENDING.value,
                    )
                    .values(
                        status=BatchJobStatus.PROCESSING.value,
                        started_at=to_db_datetime(now),
                        updated_at=to_db_datetime(now),
                    ),
                )
                if result.rowcount != 1:
                    # Another worker won the claim; try the next candidate.
                    session.rollback()
                    continue

                session.commit()
                claimed = session.exec(
                    select(BatchJobRow).where(BatchJobRow.job_id == candidate.job_id),
                ).one()
                return _to_job(claimed)

    def update(self, job: BatchJob) -> None:
        """Persist the in-memory job.

        A persisted terminal status is never replaced by a different one. When
        the stored job is already completed/failed (for example cancelled by an
        operator) and ``job`` disagrees:

        * a competing terminal transition is dropped and nothing is written;
        * a progress write from a still-running job only records its
          execution log and ``started_at``.

        In both cases ``job`` is refreshed from the stored lifecycle fields,
        including ``result_summary``.
        """

        now = utc_now()
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(BatchJobRow)
                .where(
                    col(BatchJobRow.job_id) == job.job_id,
                    or_(
                        col(BatchJobRow.status).not_in(_TERMINAL_STATUS_VALUES),
                        col(BatchJobRow.status) == job.status.value,
                    ),
                )
                .values(
                    status=job.status.value,
                    progress=job.progress,
                    error=job.error,
                    completed_at=to_optional_db_datetime(job.completed_at),
                    result_summary=job.result_summary,
                    execution_log=serialize_execution_log(job.execution_log),
                    started_at=to_optional_db_datetime(job.started_at),
                    updated_at=to_db_datetime(now),
                ),
            )
            if result.rowcount == 1:
                session.commit()
                job.updated_at = now
                return

            row = session.get(BatchJobRow, job.job_id)
            if row is None:
                session.rollback()
                raise JobNotFoundError(job.job_id)

            if not job.status.is_terminal:
                session.exec(
                    sa_update(BatchJobRow)
                    .where(col(BatchJobRow.job_id) == job.job_id)
                    .values(
                        execution_log=serialize_execution_log(job.execution_log),
                        started_at=to_optional_db_datetime(job.started_at),
                        updated_at=to_db_datetime(now),
                    ),
                )
                session.commit()
                session.refresh(row)
            else:
                session.rollback()

            logger.info(
                "Batch job %s is already %s; kept the stored outcome",
                job.job_id,
                row.status,
            )
            job.status = BatchJobStatus(row.status)
            job.error = row.error
            job.progress = row.progress
            job.result_summary = row.result_summary
            job.completed_at = to_optional_utc_aware_datetime(row.completed_at)
            job.updated_at = to_utc_aware_datetime(row.updated_at)

    def cancel(self, job_id: str, *, message: str = CANCELLED_BY_USER_MESSAGE) -> BatchJob:
        """Mark a pending or processing job as failed on operator request.

        A pending job gets the cancellation appended to its execution log. A
        processing job's log is owned by its processor, which records the
        cancellation when it observes the failed status.
        """

        now = utc_now()
        with Session(self.engine) as session:
            row = session.get(BatchJobRow, job_id)
            if row is None:
                raise JobNotFoundError(job_id)

            previous = BatchJobStatus(row.status)
            if previous.is_terminal:
                raise InvalidJobStateError(
                    f"Cannot cancel a {previous.value} job (job_id={job_id}).",
                )

            values: dict[str, object] = {
                "status": BatchJobStatus.FAILED.value,
                "error": message,
                "completed_at": to_db_datetime(now),
                "updated_at": to_db_datetime(now),
            }
            if previous == BatchJobStatus.PENDING:
                entries = (
                    *parse_execution_log(row.execution_log),
                    format_log_entry(message, now=now),
                )
                values["execution_log"] = serialize_execution_log(entries)

            result = session.exec(
                sa_update(BatchJobRow)
                .where(
                    col(BatchJobRow.job_id) == job_id,
                    col(BatchJobRow.status) == previous.value,
                )
                .values(**values),
            )
            if result.rowcount != 1:
                session.rollback()
                raise InvalidJobStateError(
                    "Job state changed concurrently while cancelling; "
                    f"please retry command (job_id={job_id}).",
                )
            session.commit()

        cancelled = self.get_by_id(job_id)
        if cancelled is None:  # pragma: no cover - deleted concurrently
            raise JobNotFoundError(job_id)
        return cancelled

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
        """List jobs with optional filters; ``search`` matches the target."""

        order_by = JOB_SORT_ORDERS.get(sort)
        if order_by is None:
            raise ValueError(f"Unsupported sort order: {sort!r}")

        statement = select(BatchJobRow)
        if status is not None:
            statement = statement.where(BatchJobRow.status == status.value)
        if job_type is not None:
            statement = statement.where(BatchJobRow.job_type == job_type.value)
        if search is not None and search.strip():
            statement = statement.where(col(BatchJobRow.target).contains(search.strip()))
        statement = statement.order_by(*order_by).offset(max(0, offset)).limit(limit)

        with Session(self.engine) as session:
            rows = session.exec(statement).all()
            return [_to_job(row) for row in rows]

    def count_by_status(self) -> dict[BatchJobStatus, int]:
        counts = dict.fromkeys(BatchJobStatus, 0)
        with Session(self.engine) as session:
            for status in session.exec(select(BatchJobRow.status)).all():
                counts[BatchJobStatus(status)] += 1
        return counts


def _to_job(row: BatchJobRow) -> BatchJob:
    return BatchJob(
        job_id=row.job_id,
        job_type=BatchJobType(row.job_type),
        target=row.target,
        status=BatchJobStatus(row.status),
        progress=row.progress,
        error=row.error,
        result_summary=row.result_summary,
        execution_log=parse_execution_log(row.execution_log),
        created_at=to_utc_aware_datetime(row.created_at),
        started_at=to_optional_utc_aware_datetime(row.started_at),
        completed_at=to_optional_utc_aware_datetime(row.completed_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )
