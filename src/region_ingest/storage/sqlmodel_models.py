"""SQLModel ORM tables for the batch job queue and neighborhood dataset."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class BatchJobRow(SQLModel, table=True):
    __tablename__ = "batch_jobs"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_batch_jobs_queue", "status", "created_at"),)

    job_id: str = Field(primary_key=True)
    job_type: str = Field(index=True)
    target: str = Field(index=True)
    status: str = Field(index=True)
    progress: int = Field(default=0)
    error: str | None = Field(default=None, sa_column=Column(Text))
    result_summary: str | None = Field(default=None, sa_column=Column(Text))
    execution_log: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    started_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    completed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class NeighborhoodRow(SQLModel, table=True):
    __tablename__ = "neighborhoods"  # type: ignore[bad-override]
    __table_args__ = (UniqueConstraint("city", "code", name="uq_neighborhoods_city_code"),)

    id: int | None = Field(default=None, primary_key=True)
    code: str = Field(index=True)
    name: str
    city: str = Field(index=True)
    neighborhood_type: str
    latitude: float = 0.0
    longitude: float = 0.0
    population_density: float | None = None
    average_woz_value: float | None = None
    crime_rate: float | None = None
    last_updated: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True)),
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
