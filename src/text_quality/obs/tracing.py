"""Tracing for metrics resolution runs."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass(slots=True)
class ResolutionTrace:
    trace_id: str
    timestamp_utc: str
    mode: str
    attempted: list[str]
    backend: str
    paragraph_count: int
    partial: bool
    notice: str | None
    latency_ms: float
    cancelled: bool


class TraceStore:
    """In-memory trace storage for resolver observability."""

    def __init__(self, max_records: int = 500) -> None:
        self.max_records = max_records
        self._records: dict[str, ResolutionTrace] = {}

    def create_record(
        self,
        *,
        mode: str,
        attempted: list[str],
        backend: str,
        paragraph_count: int,
        partial: bool,
        notice: str | None,
        latency_ms: float,
        cancelled: bool = False,
    ) -> ResolutionTrace:
        record = ResolutionTrace(
            trace_id=str(uuid.uuid4()),
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            mode=mode,
            attempted=list(attempted),
            backend=backend,
            paragraph_count=paragraph_count,
            partial=partial,
            notice=notice,
            latency_ms=latency_ms,
            cancelled=cancelled,
        )
        self._records[record.trace_id] = record
        while len(self._records) > self.max_records:
            self._records.pop(next(iter(self._records)))
        return record

    def get(self, trace_id: str) -> ResolutionTrace:
        record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[ResolutionTrace]:
        return list(self._records.values())[-limit:]

    def summary(self) -> dict[str, float | int | dict[str, int]]:
        """Aggregate resolution counts and latency for dashboard display."""
        records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_resolutions": 0,
                "partial_resolutions": 0,
                "fallbacks": 0,
                "cancelled": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "by_backend": {},
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        by_backend: dict[str, int] = {}
        for record in records:
            by_backend[record.backend] = by_backend.get(record.backend, 0) + 1

        return {
            "total_resolutions": total,
            "partial_resolutions": sum(1 for record in records if record.partial),
            "fallbacks": sum(1 for record in records if record.notice is not None),
            "cancelled": sum(1 for record in records if record.cancelled),
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "by_backend": by_backend,
        }


class Timer:
    """Simple context timer used by the resolver."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0
