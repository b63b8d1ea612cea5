"""Per-document metrics cache, color-normalization ranges and snapshots."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace

from text_quality.types import AnalysisContext, Metric, MetricRanges, Paragraph

DEGENERATE_RANGE = 1e-9
SNIPPET_LENGTH = 200


def normalize(value: float, low: float, high: float, *, enabled: bool = True) -> float:
    """Map `value` onto [0, 1] relative to `[low, high]`.

    A collapsed range (`high - low <= 1e-9`) maps everything to 0.5. With
    normalization disabled the raw value is only clamped.
    """

    if not enabled:
        return min(1.0, max(0.0, value))
    span = high - low
    if not math.isfinite(span) or span <= DEGENERATE_RANGE:
        return 0.5
    return min(1.0, max(0.0, (value - low) / span))


@dataclass(slots=True)
class MetricsCache:
    """Analysis state for one document.

    `metrics[i]` always describes `paragraphs[i]`; every write goes through
    methods that keep both lists the same length.
    """

    document_id: str
    paragraphs: list[Paragraph]
    metrics: list[Metric]
    ranges: MetricRanges = field(default_factory=MetricRanges)
    version: int = 0

    def __post_init__(self) -> None:
        if len(self.paragraphs) != len(self.metrics):
            raise ValueError(
                f"{len(self.metrics)} metrics cannot describe {len(self.paragraphs)} paragraphs"
            )

    @classmethod
    def from_full_analysis(
        cls,
        document_id: str,
        paragraphs: list[Paragraph],
        metrics: list[Metric],
        *,
        version: int = 0,
    ) -> "MetricsCache":
        return cls(
            document_id=document_id,
            paragraphs=list(paragraphs),
            metrics=list(metrics),
            ranges=MetricRanges.from_metrics(metrics),
            version=version,
        )

    def texts(self) -> list[str]:
        return [paragraph.text for paragraph in self.paragraphs]

    def indices_of(self, text: str) -> list[int]:
        return [paragraph.index for paragraph in self.paragraphs if paragraph.text == text]

    def replace_all(self, paragraphs: list[Paragraph], metrics: list[Metric]) -> None:
        """Swap in a new segmentation while keeping the captured ranges."""

        if len(paragraphs) != len(metrics):
            raise ValueError(
                f"{len(metrics)} metrics cannot describe {len(paragraphs)} paragraphs"
            )
        self.paragraphs = list(paragraphs)
        self.metrics = list(metrics)
        self.version += 1

    def update_scores(self, index: int, text: str, scored: Metric) -> bool:
        """Write SNR/topic/role for one paragraph if its text is still `text`.

        Complexity keeps its synchronously computed value. Returns False when
        the paragraph moved or changed since the rescoring was requested.
        """

        if index >= len(self.paragraphs) or self.paragraphs[index].text != text:
            return False
        self.metrics[index] = replace(
            self.metrics[index], snr=scored.snr, topic=scored.topic, role=scored.role
        )
        return True

    def normalized(self, index: int, *, enabled: bool = True) -> tuple[float, float]:
        """Return `(snr, complexity)` for one paragraph scaled by the ranges."""

        metric = self.metrics[index]
        return (
            normalize(metric.snr, self.ranges.snr_min, self.ranges.snr_max, enabled=enabled),
            normalize(
                metric.complexity,
                self.ranges.complexity_min,
                self.ranges.complexity_max,
                enabled=enabled,
            ),
        )


@dataclass(slots=True)
class MetricsSnapshot:
    """Read-only copy handed to the listing view."""

    document_id: str
    paragraphs: list[str]
    metrics: list[Metric]
    ranges: MetricRanges
    version: int

    @classmethod
    def of(cls, cache: MetricsCache) -> "MetricsSnapshot":
        return cls(
            document_id=cache.document_id,
            paragraphs=cache.texts(),
            metrics=[replace(metric) for metric in cache.metrics],
            ranges=replace(cache.ranges),
            version=cache.version,
        )

    def snippet(self, index: int, limit: int = SNIPPET_LENGTH) -> str:
        text = self.paragraphs[index]
        return text if len(text) <= limit else text[:limit] + "…"

    def format_card(self, index: int) -> str:
        metric = self.metrics[index]
        parts = [f"Signal-to-noise: {metric.snr:.2f}", f"Complexity: {metric.complexity:.2f}"]
        if metric.role:
            parts.append(f"Role: {metric.role}")
        return "  •  ".join(parts)


@dataclass(slots=True)
class DocumentState:
    cache: MetricsCache | None = None
    context: AnalysisContext | None = None
    text: str | None = None
    partial_contexts: list[AnalysisContext] = field(default_factory=list)

    def cancel_work(self) -> None:
        """Flag the full analysis and every partial rescoring as cancelled."""
        if self.context is not None:
            self.context.cancel()
            self.context = None
        for context in self.partial_contexts:
            context.cancel()
        self.partial_contexts.clear()


class MetricsStore:
    """Maps document ids to their cache and in-flight analysis token.

    Exactly one document is active at a time; other documents keep their
    caches but have no running work.
    """

    def __init__(self) -> None:
        self._documents: dict[str, DocumentState] = {}
        self.active_document_id: str | None = None

    def state(self, document_id: str) -> DocumentState:
        return self._documents.setdefault(document_id, DocumentState())

    def get(self, document_id: str) -> MetricsCache | None:
        state = self._documents.get(document_id)
        return state.cache if state else None

    def put(self, cache: MetricsCache) -> None:
        self.state(cache.document_id).cache = cache

    def discard(self, document_id: str) -> None:
        state = self._documents.pop(document_id, None)
        if state is not None:
            state.cancel_work()
        if self.active_document_id == document_id:
            self.active_document_id = None

    def document_ids(self) -> list[str]:
        return list(self._documents)
