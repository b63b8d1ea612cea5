"""Dirty-paragraph detection for incremental recompute."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field, replace

from text_quality.config import ReadabilityScript
from text_quality.pipeline.cache import MetricsCache
from text_quality.scoring.heuristic import complexity
from text_quality.types import ChangedRange, Metric, Paragraph


@dataclass(slots=True)
class RecomputePlan:
    metrics: list[Metric]
    dirty: list[int]
    # previous index -> new index for every carried-over paragraph
    moved: dict[int, int] = field(default_factory=dict)


def find_dirty(paragraphs: list[Paragraph], changed: list[ChangedRange]) -> set[int]:
    """Indices of paragraphs whose span touches any changed range."""

    return {
        paragraph.index
        for paragraph in paragraphs
        if any(change.intersects(paragraph) for change in changed)
    }


def plan_recompute(
    previous: MetricsCache | None,
    paragraphs: list[Paragraph],
    changed: list[ChangedRange],
    *,
    script: ReadabilityScript = "cyrillic",
) -> RecomputePlan:
    """Carry clean metrics over and refresh complexity for dirty paragraphs.

    A paragraph untouched by the edit keeps its previous `Metric` object. It
    is looked up at the same index first; if the text there differs (a
    paragraph was inserted or removed above it) the first unused previous
    paragraph with identical text is used instead. An untouched paragraph
    with no textual match anywhere is treated as dirty.

    Dirty paragraphs get a new `Metric` with complexity recomputed locally
    and SNR/topic/role carried from the same index as placeholders until
    asynchronous rescoring replaces them.

    `moved` maps each carried-over paragraph from its previous index to its new
    one, so work queued against the previous layout can follow it.
    """

    old_texts = previous.texts() if previous else []
    old_metrics = previous.metrics if previous else []
    touched = find_dirty(paragraphs, changed)

    by_text: dict[str, list[int]] = defaultdict(list)
    for idx, text in enumerate(old_texts):
        by_text[text].append(idx)
    used: set[int] = set()

    metrics: list[Metric] = []
    dirty: list[int] = []
    moved: dict[int, int] = {}
    for paragraph in paragraphs:
        i = paragraph.index
        if i not in touched:
            source = _aligned_index(i, paragraph.text, old_texts, by_text, used)
            if source is not None:
                used.add(source)
                moved[source] = i
                metrics.append(old_metrics[source])
                continue

        placeholder = old_metrics[i] if i < len(old_metrics) else Metric()
        metrics.append(replace(placeholder, complexity=complexity(paragraph.text, script)))
        dirty.append(i)

    return RecomputePlan(metrics=metrics, dirty=dirty, moved=moved)


def _aligned_index(
    index: int,
    text: str,
    old_texts: list[str],
    by_text: dict[str, list[int]],
    used: set[int],
) -> int | None:
    if index < len(old_texts) and old_texts[index] == text and index not in used:
        return index
    for candidate in by_text.get(text, ()):
        if candidate not in used:
            return candidate
    return None
