"""SQLModel-backed neighborhood repository with buffered batch writes."""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import func
from sqlmodel import Session, col, select

from region_ingest.neighborhoods.models import DatasetStatus, NeighborhoodRecord, SaveChangesResult
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
from region_ingest.storage.sqlmodel_models import NeighborhoodRow

logger = logging.getLogger(__name__)


class NeighborhoodRepository:
    """Neighborhood reads plus ``add_range``/``update_range`` buffers.

    Buffered records are written by :meth:`save_changes` in a single
    transaction; nothing touches the database before that call.
    """

    def __init__(
        self,
        db_path: Path,
        *,
        sqlite_busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
    ) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)
        self._pending_adds: list[NeighborhoodRecord] = []
        self._pending_updates: list[NeighborhoodRecord] = []

    def close(self) -> None:
        self.engine.dispose()

    def init_schema(self) -> None:
        upgrade_head(self.db_path)

    def get_by_city(self, city: str) -> list[NeighborhoodRecord]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(NeighborhoodRow)
                .where(NeighborhoodRow.city == city)
                .order_by(col(NeighborhoodRow.code).asc()),
            ).all()
            return [_to_record(row) for row in rows]

    def get_by_code(self, city: str, code: str) -> NeighborhoodRecord | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(NeighborhoodRow).where(
                    NeighborhoodRow.city == city,
                    NeighborhoodRow.code == code,
                ),
            ).one_or_none()
            return _to_record(row) if row is not None else None

    def add_range(self, records: list[NeighborhoodRecord]) -> None:
        self._pending_adds.extend(records)

    def update_range(self, records: list[NeighborhoodRecord]) -> None:
        self._pending_updates.extend(records)

    def save_changes(self) -> SaveChangesResult:
        """Write buffered adds and updates atomically, then clear the buffers.

        Added records receive their ``record_id`` and timestamps. On failure
        the transaction is rolled back and the buffers are kept.
        """

        adds = list(self._pending_adds)
        updates = list(self._pending_updates)
        if not adds and not updates:
            return SaveChangesResult(added=0, updated=0)

        now = utc_now()
        with Session(self.engine) as session:
            try:
                new_rows: list[tuple[NeighborhoodRecord, NeighborhoodRow]] = []
                for record in adds:
                    row = NeighborhoodRow(
                        code=record.code,
                        name=record.name,
                        city=record.city,
                        neighborhood_type=record.neighborhood_type,
                        created_at=to_db_datetime(now),
                        updated_at=to_db_datetime(now),
                    )
                    _copy_fields(record, row)
                    session.add(row)
                    new_rows.append((record, row))

                for record in updates:
                    row = self._find_row(session, record)
                    if row is None:
                        raise LookupError(
                            f"Neighborhood {record.code!r} in {record.city!r} does not exist.",
                        )
                    _copy_fields(record, row)
                    row.updated_at = to_db_datetime(now)
                    session.add(row)

                session.flush()
                session.commit()
            except Exception:
                session.rollback()
                raise

            for record, row in new_rows:
                record.record_id = row.id
                record.created_at = now
                record.updated_at = now
            for record in updates:
                record.updated_at = now

        self._pending_adds.clear()
        self._pending_updates.clear()
        logger.debug("Saved neighborhoods: added=%s updated=%s", len(adds), len(updates))
        return SaveChangesResult(added=len(adds), updated=len(updates))

    def list_dataset_status(self) -> list[DatasetStatus]:
        """Neighborhood count and latest refresh per city, ordered by city."""

        statement = (
            select(
                NeighborhoodRow.city,
                func.count(col(NeighborhoodRow.id)),
                func.max(NeighborhoodRow.last_updated),
            )
            .group_by(NeighborhoodRow.city)
            .order_by(col(NeighborhoodRow.city).asc())
        )
        with Session(self.engine) as session:
            rows = session.exec(statement).all()
        return [
            DatasetStatus(
                city=city,
                neighborhood_count=int(count),
                last_updated=to_optional_utc_aware_datetime(last_updated),
            )
            for city, count, last_updated in rows
        ]

    @staticmethod
    def _find_row(session: Session, record: NeighborhoodRecord) -> NeighborhoodRow | None:
        if record.record_id is not None:
            return session.get(NeighborhoodRow, record.record_id)
        return session.exec(
            select(NeighborhoodRow).where(
                NeighborhoodRow.city == record.city,
                NeighborhoodRow.code == record.code,
            ),
        ).one_or_none()


def _copy_fields(record: NeighborhoodRecord, row: NeighborhoodRow) -> None:
    row.name = record.name
    row.neighborhood_type = record.neighborhood_type
    row.latitude = record.latitude
    row.longitude = record.longitude
    row.population_density = record.population_density
    row.average_woz_value = record.average_woz_value
    row.crime_rate = record.crime_rate
    row.last_updated = to_optional_db_datetime(record.last_updated)


def _to_record(row: NeighborhoodRow) -> NeighborhoodRecord:
    return NeighborhoodRecord(
        record_id=row.id,
        code=row.code,
        name=row.name,
        city=row.city,
        neighborhood_type=row.neighborhood_type,
        latitude=row.latitude,
        longitude=row.longitude,
        population_density=row.population_density,
        average_woz_value=row.average_woz_value,
        crime_rate=row.crime_rate,
        last_updated=to_optional_utc_aware_datetime(row.last_updated),
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )
