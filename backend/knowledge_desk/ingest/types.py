"""Common ingestion data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

PROGRESS_STARTED = 10
PROGRESS_CHUNKED = 40
PROGRESS_EMBEDDED = 85
PROGRESS_PERSISTED = 95


@dataclass(slots=True)
class IngestProgress:
    """Progress of one in-flight ingest; owned by that invocation only.

    Values never decrease. Writes through ``sink`` are coalesced to every
    ``every_batches`` batches plus the last one of each phase.
    """

    document_id: int
    sink: Callable[[int, int], None]
    every_batches: int = 5
    value: int = 0
    writes: int = field(default=0)

    def set(self, value: int, flush: bool = True) -> None:
        value = max(self.value, min(100, int(value)))
        if value == self.value:
            return
        self.value = value
        if flush:
            self.sink(self.document_id, value)
            self.writes += 1

    def batch_done(self, done: int, total: int, low: int, high: int) -> None:
        """Interpolate between ``low`` and ``high`` as batches complete."""
        if total <= 0:
            return
        value = low + round((high - low) * done / total)
        flush = done == total or done % self.every_batches == 0
        self.set(value, flush=flush)


@dataclass(slots=True)
class IngestOutcome:
    document_id: int
    chunks: int
    dim: int
    cleared: int = 0


__all__ = [
    "IngestProgress",
    "IngestOutcome",
    "PROGRESS_STARTED",
    "PROGRESS_CHUNKED",
    "PROGRESS_EMBEDDED",
    "PROGRESS_PERSISTED",
]
