"""Shared domain models."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum


def clamp01(value: object) -> float:
    """Coerce `value` to a finite float in [0, 1]; anything else becomes 0."""

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    number = float(value)
    if not math.isfinite(number):
        return 0.0
    return min(1.0, max(0.0, number))


@dataclass(slots=True)
class Paragraph:
    """A trimmed paragraph and its position in the source document.

    `start`/`end` are character offsets of the trimmed text in the raw
    document; `start_line`/`end_line` are zero-based and inclusive.
    """

    index: int
    text: str
    start: int
    end: int
    start_line: int
    end_line: int


@dataclass(slots=True)
class Metric:
    """Per-paragraph scores, all clamped to [0, 1]."""

    snr: float = 0.0
    complexity: float = 0.0
    topic: float = 0.0
    role: str = ""

    def __post_init__(self) -> None:
        self.snr = clamp01(self.snr)
        self.complexity = clamp01(self.complexity)
        self.topic = clamp01(self.topic)
        self.role = self.role.strip() if isinstance(self.role, str) else ""

    @classmethod
    def from_payload(cls, payload: object) -> "Metric":
        """Build a metric from a loosely shaped mapping; missing fields become 0/""."""

        if not isinstance(payload, dict):
            raise TypeError(f"metric payload must be an object, got {type(payload).__name__}")
        return cls(
            snr=payload.get("snr", 0.0),
            complexity=payload.get("complexity", 0.0),
            topic=payload.get("topic", 0.0),
            role=payload.get("role") or "",
        )

    def as_dict(self) -> dict[str, float | str]:
        return {
            "snr": self.snr,
            "complexity": self.complexity,
            "topic": self.topic,
            "role": self.role,
        }


@dataclass(slots=True)
class MetricRanges:
    """Min/max bounds captured at the last full analysis."""

    snr_min: float = 0.0
    snr_max: float = 1.0
    complexity_min: float = 0.0
    complexity_max: float = 1.0

    @classmethod
    def from_metrics(cls, metrics: list[Metric]) -> "MetricRanges":
        if not metrics:
            return cls()
        snr_values = [metric.snr for metric in metrics]
        complexity_values = [metric.complexity for metric in metrics]
        return cls(
            snr_min=min(snr_values),
            snr_max=max(snr_values),
            complexity_min=min(complexity_values),
            complexity_max=max(complexity_values),
        )


@dataclass(slots=True, frozen=True)
class ChangedRange:
    """A changed character span in new-document coordinates, end exclusive."""

    start: int
    end: int

    def intersects(self, paragraph: Paragraph) -> bool:
        if self.start == self.end:
            # Pure deletion point: touching either edge counts.
            return paragraph.start <= self.start <= paragraph.end
        return self.start < paragraph.end and self.end > paragraph.start


class NoticeKind(str, Enum):
    SERVER_UNAVAILABLE = "server_unavailable"
    MISSING_CREDENTIAL = "missing_credential"
    LLM_FAILED = "llm_failed"
    ALL_BACKENDS_FAILED = "all_backends_failed"


_NOTICE_MESSAGES = {
    NoticeKind.SERVER_UNAVAILABLE: (
        "HTTP server unreachable or returned invalid data; "
        "falling back to heuristic analysis."
    ),
    NoticeKind.MISSING_CREDENTIAL: (
        "No API key set for LLM analysis; falling back to heuristic analysis."
    ),
    NoticeKind.LLM_FAILED: "LLM API call failed; falling back to heuristic analysis.",
    NoticeKind.ALL_BACKENDS_FAILED: "Falling back to heuristic analysis.",
}


@dataclass(slots=True, frozen=True)
class Notice:
    """Non-fatal message surfaced to the user when a backend tier is skipped."""

    kind: NoticeKind

    @property
    def message(self) -> str:
        return _NOTICE_MESSAGES[self.kind]


@dataclass(slots=True)
class Resolution:
    """Output of one resolver call."""

    metrics: list[Metric]
    backend: str
    notice: Notice | None = None
    cancelled: bool = False
    attempted: list[str] = field(default_factory=list)


@dataclass(slots=True)
class AnalysisContext:
    """Cancellation token for one analysis run.

    Checked cooperatively before every remote call and before any cache write.
    """

    document_id: str
    generation: int = 0
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True
