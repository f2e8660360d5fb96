"""Placeholder processor for map generation jobs."""

from __future__ import annotations

import logging

from region_ingest.orchestrator.models import BatchJob, BatchJobType
from region_ingest.orchestrator.shutdown import ShutdownToken

logger = logging.getLogger(__name__)

MAP_GENERATION_SUMMARY = "Map generation is not implemented yet; no artifacts were produced."


class MapGenerationProcessor:
    job_type = BatchJobType.MAP_GENERATION

    def process(self, job: BatchJob, shutdown: ShutdownToken) -> None:
        shutdown.raise_if_cancelled()
        logger.info("Map generation requested for %r; nothing to generate", job.target)
        job.result_summary = MAP_GENERATION_SUMMARY
        job.append_log(MAP_GENERATION_SUMMARY)
