"""Host shutdown token shared by the worker loop and running processors."""

from __future__ import annotations

import threading

from region_ingest.orchestrator.errors import ShutdownRequested


class ShutdownToken:
    """Thread-safe, one-way shutdown flag with an interruptible wait."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: str | None = None

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "shutdown requested") -> None:
        if self.reason is None:
            self.reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ShutdownRequested()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True as soon as shutdown is requested."""

        return self._event.wait(timeout=max(0.0, seconds))
