"""Batch job orchestration for neighborhood dataset ingestion."""

__version__ = "0.1.0"
