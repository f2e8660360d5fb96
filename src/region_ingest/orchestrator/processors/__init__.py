"""Job processors, one per ``BatchJobType``."""

from __future__ import annotations

from region_ingest.orchestrator.processors.all_cities import AllCitiesIngestionProcessor
from region_ingest.orchestrator.processors.base import BatchJobProcessor, CancellationCheckpoint
from region_ingest.orchestrator.processors.city_ingestion import CityIngestionProcessor
from region_ingest.orchestrator.processors.map_generation import MapGenerationProcessor

__all__ = [
    "AllCitiesIngestionProcessor",
    "BatchJobProcessor",
    "CancellationCheckpoint",
    "CityIngestionProcessor",
    "MapGenerationProcessor",
]
