import asyncio

import pytest
from fakes import FakeBackend, GatedBackend, RecordingSink

from text_quality.config import AnalyzerConfig, PipelineConfig
from text_quality.pipeline.analyzer import DocumentAnalyzer
from text_quality.pipeline.resolver import MetricsResolver
from text_quality.scoring.heuristic import complexity
from text_quality.types import ChangedRange

THREE = "Alpha beta.\n\nGamma delta.\n\nEpsilon zeta."


def _analyzer(
    server: FakeBackend,
    *,
    mode: str = "server",
    sink: RecordingSink | None = None,
    loop: asyncio.AbstractEventLoop | None = None,
) -> DocumentAnalyzer:
    resolver = MetricsResolver(http_backend=server, llm_backend=FakeBackend("llm", snr=None))
    config = AnalyzerConfig(
        backend_mode=mode,
        readability_script="latin",
        pipeline=PipelineConfig(debounce_seconds=0.01),
    )
    return DocumentAnalyzer(resolver, config, decoration_sink=sink, loop=loop)


@pytest.mark.asyncio
async def test_full_analysis_paints_every_line() -> None:
    sink = RecordingSink()
    analyzer = _analyzer(FakeBackend("server"), mode="heuristic", sink=sink)
    snapshots = []
    analyzer.add_listener(snapshots.append)

    cache = await analyzer.analyze("note.md", "Foo bar.\n\nBaz baz baz.")

    assert cache is not None
    assert cache.metrics[0].snr == 1.0
    assert cache.metrics[1].snr == pytest.approx(1 / 3)
    assert cache.ranges.snr_min == pytest.approx(1 / 3)
    assert cache.ranges.snr_max == 1.0

    document_id, decorations, version = sink.applied[-1]
    assert document_id == "note.md" and version == cache.version
    assert [(d.line, d.background) for d in decorations] == [(0, "#ffffff"), (2, "#d1f9d1")]
    assert snapshots[-1].paragraphs == ["Foo bar.", "Baz baz baz."]
    assert analyzer.snapshot().format_card(1).startswith("Signal-to-noise: 0.33")


@pytest.mark.asyncio
async def test_edit_rescores_only_the_dirty_paragraph() -> None:
    server = FakeBackend("server", snr=0.25)
    analyzer = _analyzer(server)
    cache = await analyzer.analyze("doc", THREE)
    assert cache is not None
    before = list(cache.metrics)
    ranges = cache.ranges

    server.snr = 0.75
    edited = THREE.replace("Gamma delta.", "Gamma gamma.")
    dirty = analyzer.on_change("doc", edited, [ChangedRange(19, 24)])

    assert dirty == [1]
    assert cache.metrics[0] is before[0] and cache.metrics[2] is before[2]
    assert cache.metrics[1].complexity == complexity("Gamma gamma.", "latin")

    await analyzer.flush("doc")

    assert server.calls[-1] == ["Gamma gamma."]
    assert server.subjects[-1] == "Alpha beta."
    assert cache.metrics[1].snr == 0.75
    assert cache.metrics[1].complexity == complexity("Gamma gamma.", "latin")
    assert cache.metrics[0] is before[0] and cache.metrics[2] is before[2]
    assert cache.ranges == ranges


@pytest.mark.asyncio
async def test_paragraph_inserted_above_keeps_metrics_of_moved_paragraphs() -> None:
    server = FakeBackend("server", snr=0.25)
    analyzer = _analyzer(server)
    cache = await analyzer.analyze("doc", THREE)
    assert cache is not None
    before = list(cache.metrics)

    edited = "New intro.\n\n" + THREE
    dirty = analyzer.on_change("doc", edited, [(0, 12)])

    assert dirty == [0]
    assert cache.metrics[1:] == before and all(
        new is old for new, old in zip(cache.metrics[1:], before)
    )


@pytest.mark.asyncio
async def test_rapid_edits_coalesce_into_one_rescoring() -> None:
    server = FakeBackend("server", snr=0.25)
    analyzer = _analyzer(server)
    await analyzer.analyze("doc", THREE)

    first = THREE.replace("Alpha beta.", "Alpha alpha.")
    analyzer.on_change("doc", first, [ChangedRange(6, 10)])
    second = first.replace("Epsilon zeta.", "Epsilon eta.")
    analyzer.on_change("doc", second, [ChangedRange(35, 38)])
    assert analyzer.pending_indices("doc") == frozenset({0, 2})

    await analyzer.flush("doc")

    summary = analyzer.resolver.trace_store.summary()
    assert summary["partial_resolutions"] == 1
    assert server.calls[-1] == ["Alpha alpha.", "Epsilon eta."]
    assert analyzer.pending_indices("doc") == frozenset()


@pytest.mark.asyncio
async def test_debounce_timer_fires_without_flush() -> None:
    server = FakeBackend("server", snr=0.25)
    analyzer = _analyzer(server)
    await analyzer.analyze("doc", THREE)
    calls_after_analysis = len(server.calls)

    analyzer.on_change("doc", THREE.replace("zeta", "eta"), [ChangedRange(34, 37)])
    await asyncio.sleep(0.1)
    await analyzer.flush("doc")

    assert len(server.calls) == calls_after_analysis + 1


@pytest.mark.asyncio
async def test_switching_documents_drops_the_stale_analysis() -> None:
    gated = GatedBackend("server", snr=0.9)
    sink = RecordingSink()
    analyzer = _analyzer(gated, sink=sink)

    stale = asyncio.create_task(analyzer.analyze("a.md", "Text of A."))
    await gated.entered.wait()

    fresh = await analyzer.analyze("b.md", "Text of B.\n\nMore of B.")
    gated.release()

    assert await stale is None
    assert analyzer.store.get("a.md") is None
    assert fresh is not None
    assert [metric.snr for metric in fresh.metrics] == [0.9, 0.9]
    assert analyzer.active_document_id == "b.md"
    assert {document_id for document_id, _, _ in sink.applied} == {"b.md"}
    assert analyzer.resolver.trace_store.summary()["cancelled"] == 1


@pytest.mark.asyncio
async def test_edit_during_full_analysis_is_reconciled() -> None:
    gated = GatedBackend("server", snr=0.9)
    analyzer = _analyzer(gated)

    running = asyncio.create_task(analyzer.analyze("doc", "One.\n\nTwo."))
    await gated.entered.wait()
    analyzer.on_change("doc", "One.\n\nTwo!\n\nThree.", [ChangedRange(6, 17)])
    gated.release()

    cache = await running
    assert cache is not None
    assert cache.texts() == ["One.", "Two!", "Three."]
    assert len(cache.metrics) == 3
    assert cache.metrics[0].snr == 0.9

    await analyzer.flush("doc")

    assert [metric.snr for metric in cache.metrics] == [0.9, 0.9, 0.9]


@pytest.mark.asyncio
async def test_close_discards_document_state() -> None:
    analyzer = _analyzer(FakeBackend("server"), mode="heuristic")
    await analyzer.analyze("doc", THREE)
    analyzer.on_change("doc", THREE + " More.", [ChangedRange(len(THREE), len(THREE) + 6)])

    analyzer.close("doc")

    assert analyzer.snapshot("doc") is None
    assert analyzer.active_document_id is None
    assert analyzer.pending_indices("doc") == frozenset()
    assert analyzer.decorations("doc") == []


@pytest.mark.asyncio
async def test_theme_change_repaints_and_deactivate_stops_publishing() -> None:
    sink = RecordingSink()
    analyzer = _analyzer(FakeBackend("server"), mode="heuristic", sink=sink)
    await analyzer.analyze("note.md", "Foo bar.\n\nBaz baz baz.")

    analyzer.set_base_color("rgb(30, 30, 30)")

    _, decorations, _ = sink.applied[-1]
    assert decorations[0].background == "#1e1e1e"
    assert decorations[0].color == "#cccccc"
    assert decorations[1].style == "background-color: #d1f9d1; color: #4c4c4c;"

    analyzer.deactivate()
    published = len(sink.applied)
    analyzer.set_base_color("#ffffff")

    assert analyzer.active_document_id is None
    assert len(sink.applied) == published
    assert analyzer.snapshot("note.md") is not None


@pytest.mark.asyncio
async def test_pending_rescoring_follows_paragraph_shifted_by_insert() -> None:
    server = FakeBackend("server", snr=0.25)
    analyzer = _analyzer(server)
    cache = await analyzer.analyze("doc", THREE)
    assert cache is not None
    server.snr = 0.75

    edited = THREE.replace("Epsilon zeta.", "Epsilon eta.")
    assert analyzer.on_change("doc", edited, [ChangedRange(35, 38)]) == [2]
    shifted = "New intro.\n\n" + edited
    assert analyzer.on_change("doc", shifted, [ChangedRange(0, 12)]) == [0]
    assert analyzer.pending_indices("doc") == frozenset({0, 3})

    await analyzer.flush("doc")

    assert server.calls[-1] == ["New intro.", "Epsilon eta."]
    assert [metric.snr for metric in cache.metrics] == [0.75, 0.25, 0.25, 0.75]


@pytest.mark.asyncio
async def test_paragraph_shifted_while_being_rescored_is_scored_again() -> None:
    analyzer = _analyzer(FakeBackend("server", snr=0.25))
    cache = await analyzer.analyze("doc", THREE)
    assert cache is not None
    gated = GatedBackend("server", snr=0.9)
    analyzer.resolver.http_backend = gated

    edited = THREE.replace("Epsilon zeta.", "Epsilon eta.")
    analyzer.on_change("doc", edited, [ChangedRange(35, 38)])
    in_flight = asyncio.create_task(analyzer.flush("doc"))
    await gated.entered.wait()

    analyzer.on_change("doc", "New intro.\n\n" + edited, [ChangedRange(0, 12)])
    gated.release()
    await in_flight
    await analyzer.flush("doc")

    assert cache.texts()[3] == "Epsilon eta."
    assert [metric.snr for metric in cache.metrics] == [0.9, 0.25, 0.25, 0.9]


@pytest.mark.asyncio
async def test_switch_right_after_timer_fires_skips_the_remote_call() -> None:
    server = FakeBackend("server", snr=0.25)
    analyzer = _analyzer(server)
    await analyzer.analyze("a.md", THREE)
    calls_after_analysis = len(server.calls)

    analyzer.on_change("a.md", THREE.replace("zeta", "eta"), [ChangedRange(34, 37)])
    flushing = asyncio.create_task(analyzer.flush("a.md"))
    # One loop turn: the timer has fired and the rescoring task exists but has not run.
    await asyncio.sleep(0)
    analyzer.activate("b.md")
    await flushing

    assert len(server.calls) == calls_after_analysis


def test_on_change_without_event_loop_fails_before_touching_state() -> None:
    analyzer = _analyzer(FakeBackend("server"))

    with pytest.raises(RuntimeError):
        analyzer.on_change("doc", "One.\n\nTwo.", [ChangedRange(0, 4)])

    assert analyzer.snapshot("doc") is None
    assert analyzer.active_document_id is None
    assert analyzer.pending_indices("doc") == frozenset()


def test_on_change_from_plain_callback_runs_on_bound_loop() -> None:
    loop = asyncio.new_event_loop()
    server = FakeBackend("server", snr=0.75)
    analyzer = _analyzer(server, loop=loop)
    try:
        dirty = analyzer.on_change("doc", "One.\n\nTwo.", [ChangedRange(0, 4)])
        loop.run_until_complete(analyzer.flush("doc"))
    finally:
        loop.close()

    assert dirty == [0, 1]
    assert server.calls == [["One.", "Two."]]
    snapshot = analyzer.snapshot("doc")
    assert snapshot is not None
    assert [metric.snr for metric in snapshot.metrics] == [0.75, 0.75]
