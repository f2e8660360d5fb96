"""Runtime configuration for the batch job worker and data-source clients."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from region_ingest.enrichment.cbs import DEFAULT_CBS_BASE_URL
from region_ingest.enrichment.pdok import DEFAULT_PDOK_WFS_URL
from region_ingest.http.fetcher import DEFAULT_MAX_RETRIES, DEFAULT_TIMEOUT_SECONDS
from region_ingest.orchestrator.processors.base import (
    DEFAULT_CANCELLATION_POLL_INTERVAL,
    DEFAULT_INGESTION_BATCH_SIZE,
)
from region_ingest.storage.common import DEFAULT_BUSY_TIMEOUT_MS


@dataclass(slots=True)
class WorkerSettings:
    """Polling worker settings."""

    poll_interval_seconds: float = 10.0
    worker_id: str = field(default_factory=lambda: f"worker-{os.getpid()}")


@dataclass(slots=True)
class JobSettings:
    """Processor tuning shared by all job types."""

    cancellation_poll_interval: int = DEFAULT_CANCELLATION_POLL_INTERVAL
    ingestion_batch_size: int = DEFAULT_INGESTION_BATCH_SIZE


@dataclass(slots=True)
class EnrichmentSettings:
    """PDOK / CBS endpoints and HTTP policy."""

    pdok_wfs_url: str = DEFAULT_PDOK_WFS_URL
    cbs_base_url: str = DEFAULT_CBS_BASE_URL
    request_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".region_ingest.db")
    sqlite_busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS
    worker: WorkerSettings = field(default_factory=WorkerSettings)
    jobs: JobSettings = field(default_factory=JobSettings)
    enrichment: EnrichmentSettings = field(default_factory=EnrichmentSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("REGION_INGEST_DB_PATH", ".region_ingest.db")),
            sqlite_busy_timeout_ms=int(
                os.getenv("REGION_INGEST_SQLITE_BUSY_TIMEOUT_MS", str(DEFAULT_BUSY_TIMEOUT_MS)),
            ),
            worker=WorkerSettings(
                poll_interval_seconds=float(
                    os.getenv("REGION_INGEST_WORKER_POLL_INTERVAL_SECONDS", "10.0"),
                ),
                worker_id=os.getenv("REGION_INGEST_WORKER_ID", f"worker-{os.getpid()}"),
            ),
            jobs=JobSettings(
                cancellation_poll_interval=int(
                    os.getenv(
                        "REGION_INGEST_CANCELLATION_POLL_INTERVAL",
                        str(DEFAULT_CANCELLATION_POLL_INTERVAL),
                    ),
                ),
                ingestion_batch_size=int(
                    os.getenv(
                        "REGION_INGEST_INGESTION_BATCH_SIZE",
                        str(DEFAULT_INGESTION_BATCH_SIZE),
                    ),
                ),
            ),
            enrichment=EnrichmentSettings(
                pdok_wfs_url=os.getenv("REGION_INGEST_PDOK_WFS_URL", DEFAULT_PDOK_WFS_URL),
                cbs_base_url=os.getenv("REGION_INGEST_CBS_BASE_URL", DEFAULT_CBS_BASE_URL),
                request_timeout_seconds=float(
                    os.getenv(
                        "REGION_INGEST_REQUEST_TIMEOUT_SECONDS",
                        str(DEFAULT_TIMEOUT_SECONDS),
                    ),
                ),
                max_retries=int(
                    os.getenv("REGION_INGEST_HTTP_MAX_RETRIES", str(DEFAULT_MAX_RETRIES)),
                ),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for out-of-range values or malformed URLs."""

        if self.sqlite_busy_timeout_ms <= 0:
            raise ValueError("REGION_INGEST_SQLITE_BUSY_TIMEOUT_MS must be > 0.")
        if self.worker.poll_interval_seconds < 0:
            raise ValueError("REGION_INGEST_WORKER_POLL_INTERVAL_SECONDS must be >= 0.")
        if not self.worker.worker_id.strip():
            raise ValueError("REGION_INGEST_WORKER_ID must not be empty.")
        if self.jobs.cancellation_poll_interval <= 0:
            raise ValueError("REGION_INGEST_CANCELLATION_POLL_INTERVAL must be > 0.")
        if self.jobs.ingestion_batch_size <= 0:
            raise ValueError("REGION_INGEST_INGESTION_BATCH_SIZE must be > 0.")
        if self.enrichment.request_timeout_seconds <= 0:
            raise ValueError("REGION_INGEST_REQUEST_TIMEOUT_SECONDS must be > 0.")
        if self.enrichment.max_retries < 0:
            raise ValueError("REGION_INGEST_HTTP_MAX_RETRIES must be >= 0.")
        _validate_http_url(self.enrichment.pdok_wfs_url, name="REGION_INGEST_PDOK_WFS_URL")
        _validate_http_url(self.enrichment.cbs_base_url, name="REGION_INGEST_CBS_BASE_URL")


def _validate_http_url(value: str, *, name: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            f"Invalid {name}: {value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )
