import pytest

from text_quality.ingest.segmenter import segment
from text_quality.pipeline.cache import MetricsCache, MetricsSnapshot, MetricsStore, normalize
from text_quality.types import AnalysisContext, Metric


def _cache(metrics: list[Metric]) -> MetricsCache:
    text = "\n\n".join(f"Paragraph number {idx}." for idx in range(len(metrics)))
    return MetricsCache.from_full_analysis("doc", segment(text), metrics)


def test_full_analysis_ranges_span_the_document() -> None:
    cache = _cache([Metric(snr=0.2, complexity=0.1), Metric(snr=0.8, complexity=0.6)])

    assert cache.normalized(0) == (0.0, 0.0)
    assert cache.normalized(1) == (1.0, 1.0)


def test_single_paragraph_normalizes_to_midpoint() -> None:
    cache = _cache([Metric(snr=0.4, complexity=0.7)])

    assert cache.normalized(0) == (0.5, 0.5)


def test_normalization_can_be_disabled() -> None:
    cache = _cache([Metric(snr=0.2, complexity=0.1), Metric(snr=0.8, complexity=0.6)])

    assert cache.normalized(0, enabled=False) == (0.2, 0.1)
    assert normalize(1.7, 0.0, 0.5, enabled=False) == 1.0


def test_metric_values_are_clamped_and_finite() -> None:
    metric = Metric(snr=1.5, complexity=float("nan"), topic=-2, role="  example ")

    assert (metric.snr, metric.complexity, metric.topic, metric.role) == (1.0, 0.0, 0.0, "example")


def test_misaligned_cache_is_rejected() -> None:
    with pytest.raises(ValueError):
        MetricsCache("doc", segment("one\n\ntwo"), [Metric()])

    cache = _cache([Metric()])
    with pytest.raises(ValueError):
        cache.replace_all(segment("one\n\ntwo"), [Metric()])


def test_update_scores_checks_paragraph_text() -> None:
    cache = _cache([Metric(snr=0.1, complexity=0.3), Metric(snr=0.2)])
    untouched = cache.metrics[1]

    assert cache.update_scores(0, "Paragraph number 0.", Metric(snr=0.9, complexity=0.0, role="example"))
    assert not cache.update_scores(1, "stale text", Metric(snr=0.9))
    assert not cache.update_scores(5, "Paragraph number 0.", Metric(snr=0.9))

    assert cache.metrics[0].snr == 0.9
    assert cache.metrics[0].complexity == 0.3
    assert cache.metrics[0].role == "example"
    assert cache.metrics[1] is untouched


def test_snapshot_is_a_detached_copy() -> None:
    cache = _cache([Metric(snr=0.25, complexity=0.5, role="question")])
    cache.paragraphs[0].text = "x" * 250

    snapshot = MetricsSnapshot.of(cache)
    cache.metrics[0].snr = 0.0

    assert snapshot.metrics[0].snr == 0.25
    assert snapshot.snippet(0) == "x" * 200 + "…"
    assert snapshot.format_card(0) == "Signal-to-noise: 0.25  •  Complexity: 0.50  •  Role: question"


def test_store_discard_cancels_running_work() -> None:
    store = MetricsStore()
    store.put(_cache([Metric()]))
    context = AnalysisContext(document_id="doc")
    store.state("doc").context = context
    store.active_document_id = "doc"

    store.discard("doc")

    assert context.cancelled
    assert store.get("doc") is None
    assert store.active_document_id is None
