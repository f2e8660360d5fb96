"""Batch job orchestration for neighborhood dataset ingestion.

Jobs live in one SQLite table and move through a small state machine:
``pending -> processing -> completed | failed``. A single polling worker
claims the oldest pending job with a compare-and-swap update, dispatches
it to the processor registered for its type, and records progress and a
timestamped execution log as the processor runs.

Several worker processes may share one database; the claim guarantees a
job is handed to at most one of them. Anything beyond that (leases,
heartbeats, redelivery after a crash) is deliberately absent: a job left
in ``processing`` by a dead worker stays there until an operator cancels
it.
"""
