from __future__ import annotations

import threading
import uuid
from pathlib import Path

import allure
import pytest
from sqlalchemy import text

from region_ingest.orchestrator.errors import (
    CANCELLED_BY_USER_MESSAGE,
    InvalidJobStateError,
    JobNotFoundError,
)
from region_ingest.orchestrator.models import BatchJobCreate, BatchJobStatus, BatchJobType
from region_ingest.orchestrator.repository import BatchJobRepository

pytestmark = [
    allure.epic("Batch Jobs"),
    allure.feature("Job Store"),
]


def _create(repository: BatchJobRepository, target: str, job_type=BatchJobType.CITY_INGESTION):
    return repository.add(BatchJobCreate(job_type=job_type, target=target))


def test_alembic_schema_is_initialized_to_head(job_repository: BatchJobRepository) -> None:
    with job_repository.engine.connect() as connection:
        version = connection.execute(text("SELECT version_num FROM alembic_version")).scalar_one()
        tables = {
            row[0]
            for row in connection.execute(
                text("SELECT name FROM sqlite_master WHERE type = 'table'"),
            )
        }

    assert version == "20261001_0002"
    assert {"batch_jobs", "neighborhoods"} <= tables


def test_add_creates_pending_job_with_uuid(job_repository: BatchJobRepository) -> None:
    job = _create(job_repository, "Utrecht")

    assert uuid.UUID(job.job_id).version == 4
    assert job.status == BatchJobStatus.PENDING
    assert job.progress == 0
    assert job.execution_log == ()
    assert job.created_at.tzinfo is not None
    assert job_repository.get_status(job.job_id) == BatchJobStatus.PENDING


def test_claim_returns_oldest_pending_first(job_repository: BatchJobRepository) -> None:
    first = _create(job_repository, "Amsterdam")
    second = _create(job_repository, "Rotterdam")

    claimed = job_repository.claim_next_pending()
    assert claimed is not None
    assert claimed.job_id == first.job_id
    assert claimed.status == BatchJobStatus.PROCESSING
    assert claimed.started_at is not None

    next_claim = job_repository.claim_next_pending()
    assert next_claim is not None
    assert next_claim.job_id == second.job_id
    assert job_repository.claim_next_pending() is None


def test_claim_is_exclusive_across_concurrent_workers(db_path: Path) -> None:
    setup = BatchJobRepository(db_path)
    setup.init_schema()
    expected = {_create(setup, f"City {index}").job_id for index in range(12)}
    setup.close()

    claimed: list[str] = []
    errors: list[BaseException] = []
    lock = threading.Lock()
    start = threading.Event()

    def _drain() -> None:
        repository = BatchJobRepository(db_path)
        try:
            start.wait(timeout=5)
            while True:
                job = repository.claim_next_pending()
                if job is None:
                    return
                with lock:
                    claimed.append(job.job_id)
        except BaseException as error:  # noqa: BLE001
            errors.append(error)
        finally:
            repository.close()

    threads = [threading.Thread(target=_drain) for _ in range(4)]
    for thread in threads:
        thread.start()
    start.set()
    for thread in threads:
        thread.join(timeout=30)

    assert errors == []
    assert len(claimed) == len(set(claimed))
    assert set(claimed) == expected


def test_update_persists_progress_summary_and_log(job_repository: BatchJobRepository) -> None:
    _create(job_repository, "Utrecht")
    job = job_repository.claim_next_pending()
    assert job is not None

    job.set_progress(40)
    job.result_summary = "partial"
    job.append_log("halfway")
    job_repository.update(job)

    stored = job_repository.get_by_id(job.job_id)
    assert stored is not None
    assert stored.progress == 40
    assert stored.result_summary == "partial"
    assert stored.execution_log == job.execution_log


def test_update_never_replaces_a_persisted_terminal_status(
    job_repository: BatchJobRepository,
) -> None:
    _create(job_repository, "Utrecht")
    job = job_repository.claim_next_pending()
    assert job is not None

    job_repository.cancel(job.job_id)
    job.set_progress(60)
    job.append_log("still working")
    job_repository.update(job)

    stored = job_repository.get_by_id(job.job_id)
    assert stored is not None
    assert stored.status == BatchJobStatus.FAILED
    assert stored.error == CANCELLED_BY_USER_MESSAGE
    assert stored.progress == 0
    assert stored.execution_log[-1].endswith("still working")
    assert job.status == BatchJobStatus.FAILED
    assert job.error == CANCELLED_BY_USER_MESSAGE


def test_update_missing_job_raises(job_repository: BatchJobRepository) -> None:
    job = _create(job_repository, "Utrecht")
    job.job_id = "missing"

    with pytest.raises(JobNotFoundError):
        job_repository.update(job)


def test_cancel_pending_job_marks_failed_and_logs(job_repository: BatchJobRepository) -> None:
    job = _create(job_repository, "Utrecht")

    cancelled = job_repository.cancel(job.job_id)

    assert cancelled.status == BatchJobStatus.FAILED
    assert cancelled.error == CANCELLED_BY_USER_MESSAGE
    assert cancelled.completed_at is not None
    assert len(cancelled.execution_log) == 1
    assert cancelled.execution_log[0].endswith(CANCELLED_BY_USER_MESSAGE)
    assert job_repository.claim_next_pending() is None


def test_cancel_processing_job_leaves_log_to_processor(
    job_repository: BatchJobRepository,
) -> None:
    _create(job_repository, "Utrecht")
    job = job_repository.claim_next_pending()
    assert job is not None

    cancelled = job_repository.cancel(job.job_id)

    assert cancelled.status == BatchJobStatus.FAILED
    assert cancelled.execution_log == ()


def test_cancel_terminal_job_is_rejected(job_repository: BatchJobRepository) -> None:
    job = _create(job_repository, "Utrecht")
    job_repository.cancel(job.job_id)

    with pytest.raises(InvalidJobStateError, match="Cannot cancel a failed job"):
        job_repository.cancel(job.job_id)


def test_cancel_unknown_job_raises(job_repository: BatchJobRepository) -> None:
    with pytest.raises(JobNotFoundError):
        job_repository.cancel("does-not-exist")


def test_list_jobs_filters_searches_and_sorts(job_repository: BatchJobRepository) -> None:
    amsterdam = _create(job_repository, "Amsterdam")
    _create(job_repository, "Rotterdam")
    _create(job_repository, "", job_type=BatchJobType.ALL_CITIES_INGESTION)
    job_repository.cancel(amsterdam.job_id)

    failed = job_repository.list_jobs(status=BatchJobStatus.FAILED)
    assert [job.target for job in failed] == ["Amsterdam"]

    cities = job_repository.list_jobs(job_type=BatchJobType.CITY_INGESTION, sort="target_asc")
    assert [job.target for job in cities] == ["Amsterdam", "Rotterdam"]

    searched = job_repository.list_jobs(search="dam")
    assert {job.target for job in searched} == {"Amsterdam", "Rotterdam"}

    newest = job_repository.list_jobs(sort="created_at_desc", limit=1)
    assert newest[0].job_type == BatchJobType.ALL_CITIES_INGESTION

    counts = job_repository.count_by_status()
    assert counts[BatchJobStatus.PENDING] == 2
    assert counts[BatchJobStatus.FAILED] == 1


def test_list_jobs_rejects_unknown_sort(job_repository: BatchJobRepository) -> None:
    with pytest.raises(ValueError, match="Unsupported sort order"):
        job_repository.list_jobs(sort="priority_desc")


def test_get_status_of_unknown_job_is_none(job_repository: BatchJobRepository) -> None:
    assert job_repository.get_status("nope") is None
    assert job_repository.get_by_id("nope") is None
