"""Host-facing facade: full analysis, incremental recompute and reads."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from text_quality.config import AnalyzerConfig
from text_quality.ingest.segmenter import segment
from text_quality.pipeline.cache import MetricsCache, MetricsSnapshot, MetricsStore
from text_quality.pipeline.resolver import MetricsResolver
from text_quality.pipeline.scheduler import DebouncedScheduler
from text_quality.pipeline.tracker import plan_recompute
from text_quality.render.colors import ColorMapper
from text_quality.render.decorations import DecorationSink, LineDecoration, build_decorations
from text_quality.types import AnalysisContext, ChangedRange

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[MetricsSnapshot], None]


class DocumentAnalyzer:
    """Coordinates segmentation, resolution, caching and rendering.

    Design notes:
    1. Full analysis.
       `analyze` resolves every paragraph through the resolver, captures the
       min/max ranges and replaces the document's cache wholesale. Each run
       owns an `AnalysisContext`; a newer run, a document switch or `close`
       flags it cancelled and its result is dropped instead of written.

    2. Incremental recompute.
       `on_change` re-segments the new text, carries clean metrics over
       (see `plan_recompute`), refreshes complexity for dirty paragraphs
       synchronously and submits their indices to a per-document debounce
       scheduler. When the quiet window elapses, one resolver call scores
       exactly the accumulated indices and only those entries are written.
       Indices still waiting for the timer are moved along with their
       paragraphs when a later edit shifts the layout. Ranges are left as
       captured by the last full analysis.

    3. Stale results.
       A rescored entry is written only if the paragraph at that index still
       has the text that was scored; a paragraph that moved while it was being
       scored is queued again at its new index. A full analysis that finishes
       after the text moved on is reconciled against the latest text before
       use.
    """

    def __init__(
        self,
        resolver: MetricsResolver,
        config: AnalyzerConfig | None = None,
        *,
        store: MetricsStore | None = None,
        decoration_sink: DecorationSink | None = None,
        base_color: str | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.resolver = resolver
        self.loop = loop
        self.config = config or AnalyzerConfig()
        self.store = store or MetricsStore()
        self.decoration_sink = decoration_sink
        self.base_color = base_color
        self.mapper = ColorMapper(self.config.colors)
        self._generation = 0
        self._schedulers: dict[str, DebouncedScheduler] = {}
        self._listeners: list[SnapshotListener] = []

    @property
    def active_document_id(self) -> str | None:
        return self.store.active_document_id

    def add_listener(self, listener: SnapshotListener) -> None:
        """Register a listing-view callback invoked after every cache write."""
        self._listeners.append(listener)

    def update_config(self, config: AnalyzerConfig) -> None:
        """Adopt a new settings snapshot and repaint the active document."""

        self.config = config
        self.mapper = ColorMapper(config.colors)
        for scheduler in self._schedulers.values():
            scheduler.delay_seconds = config.pipeline.debounce_seconds
        active = self.store.active_document_id
        cache = self.store.get(active) if active else None
        if cache is not None:
            cache.version += 1
            self._publish(cache)

    def set_base_color(self, css_color: str | None) -> None:
        self.base_color = css_color
        active = self.store.active_document_id
        cache = self.store.get(active) if active else None
        if cache is not None:
            self._publish(cache)

    def activate(self, document_id: str) -> None:
        """Make `document_id` the active document, cancelling work for others."""

        if self.store.active_document_id == document_id:
            return
        for other in self.store.document_ids():
            if other != document_id:
                self._cancel(other)
        self.store.active_document_id = document_id
        logger.debug("Active document is now %s", document_id)

    def deactivate(self) -> None:
        """No document is active; all in-flight work is cancelled."""

        for document_id in self.store.document_ids():
            self._cancel(document_id)
        self.store.active_document_id = None

    def close(self, document_id: str) -> None:
        self._cancel(document_id)
        self._schedulers.pop(document_id, None)
        self.store.discard(document_id)

    async def analyze(self, document_id: str, text: str) -> MetricsCache | None:
        """Run a full analysis; returns `None` if the run was superseded."""

        self.activate(document_id)
        self._cancel(document_id)
        state = self.store.state(document_id)
        state.text = text
        context = self._new_context(document_id)
        state.context = context
        config = self.config

        paragraphs = segment(text)
        resolution = await self.resolver.resolve(
            [paragraph.text for paragraph in paragraphs], config, context=context
        )
        if context.cancelled or resolution.cancelled:
            logger.debug("Discarding cancelled analysis of %s", document_id)
            return None
        if state.context is context:
            state.context = None

        previous = self.store.get(document_id)
        cache = MetricsCache.from_full_analysis(
            document_id,
            paragraphs,
            resolution.metrics,
            version=(previous.version + 1) if previous else 1,
        )
        self.store.put(cache)
        logger.info(
            "Analyzed %s: %d paragraphs via %s", document_id, len(paragraphs), resolution.backend
        )

        if state.text is not None and state.text != text:
            # The document was edited while the analysis ran; indices queued by
            # those edits refer to a layout that no longer exists.
            scheduler = self._schedulers.get(document_id)
            if scheduler is not None:
                scheduler.cancel()
            self._reconcile(document_id, state.text, [])
        else:
            self._publish(cache)
        return cache

    def on_change(
        self,
        document_id: str,
        text: str,
        changed_ranges: list[ChangedRange] | list[tuple[int, int]],
    ) -> list[int]:
        """Apply an edit; returns the indices scheduled for rescoring.

        Raises RuntimeError, before touching any state, when called with no
        running event loop and no `loop` given at construction.
        """

        self._scheduler(document_id).event_loop()
        self.activate(document_id)
        self.store.state(document_id).text = text
        ranges = [
            change if isinstance(change, ChangedRange) else ChangedRange(*change)
            for change in changed_ranges
        ]
        return self._reconcile(document_id, text, ranges)

    def snapshot(self, document_id: str | None = None) -> MetricsSnapshot | None:
        target = document_id or self.store.active_document_id
        if target is None:
            return None
        cache = self.store.get(target)
        return MetricsSnapshot.of(cache) if cache is not None else None

    def decorations(
        self, document_id: str | None = None, base_color: str | None = None
    ) -> list[LineDecoration]:
        target = document_id or self.store.active_document_id
        cache = self.store.get(target) if target else None
        if cache is None:
            return []
        return build_decorations(cache, self.mapper, base_color or self.base_color)

    def pending_indices(self, document_id: str) -> frozenset[int]:
        scheduler = self._schedulers.get(document_id)
        return scheduler.pending if scheduler else frozenset()

    async def flush(self, document_id: str | None = None) -> None:
        """Fire pending debounce timers now and wait for their rescoring."""

        targets = [document_id] if document_id else list(self._schedulers)
        for target in targets:
            scheduler = self._schedulers.get(target)
            if scheduler is not None:
                await scheduler.flush()

    def _reconcile(self, document_id: str, text: str, changed: list[ChangedRange]) -> list[int]:
        paragraphs = segment(text)
        previous = self.store.get(document_id)
        plan = plan_recompute(
            previous, paragraphs, changed, script=self.config.readability_script
        )
        if previous is not None:
            previous.replace_all(paragraphs, plan.metrics)
            cache = previous
        else:
            cache = MetricsCache(document_id, paragraphs, plan.metrics, version=1)
            self.store.put(cache)

        self._publish(cache)
        if plan.dirty:
            logger.debug("Document %s: %d dirty paragraphs", document_id, len(plan.dirty))
        if plan.dirty or document_id in self._schedulers:
            # Pending indices follow their paragraphs into the new layout.
            self._scheduler(document_id).submit(plan.dirty, remap=plan.moved)
        return plan.dirty

    async def _rescore(
        self, document_id: str, indices: frozenset[int], context: AnalysisContext
    ) -> None:
        if context.cancelled:
            return
        state = self.store.state(document_id)
        try:
            cache = self.store.get(document_id)
            if cache is None:
                return
            targets = sorted(index for index in indices if index < len(cache.paragraphs))
            texts = [cache.paragraphs[index].text for index in targets]
            subject = cache.paragraphs[0].text if cache.paragraphs else None
            resolution = await self.resolver.resolve(
                texts, self.config, context=context, subject=subject, partial=True
            )
        finally:
            if context in state.partial_contexts:
                state.partial_contexts.remove(context)

        if context.cancelled or resolution.cancelled:
            logger.debug("Discarding cancelled rescoring of %s", document_id)
            return
        cache = self.store.get(document_id)
        if cache is None:
            return
        written: list[int] = []
        relocated: set[int] = set()
        for index, text, metric in zip(targets, texts, resolution.metrics, strict=True):
            if cache.update_scores(index, text, metric):
                written.append(index)
            else:
                # Moved by an edit while in flight; score it again where it is now.
                relocated.update(cache.indices_of(text))
        if written:
            cache.version += 1
            self._publish(cache)
        if relocated:
            self._scheduler(document_id).submit(relocated)

    def _scheduler(self, document_id: str) -> DebouncedScheduler:
        scheduler = self._schedulers.get(document_id)
        if scheduler is None:

            def _dispatch(indices: frozenset[int]) -> Awaitable[None]:
                # Registered before the task starts so a document switch can cancel it.
                context = self._new_context(document_id)
                self.store.state(document_id).partial_contexts.append(context)
                return self._rescore(document_id, indices, context)

            scheduler = DebouncedScheduler(
                self.config.pipeline.debounce_seconds, _dispatch, loop=self.loop
            )
            self._schedulers[document_id] = scheduler
        return scheduler

    def _new_context(self, document_id: str) -> AnalysisContext:
        self._generation += 1
        return AnalysisContext(document_id=document_id, generation=self._generation)

    def _cancel(self, document_id: str) -> None:
        scheduler = self._schedulers.get(document_id)
        if scheduler is not None:
            scheduler.cancel()
        self.store.state(document_id).cancel_work()

    def _publish(self, cache: MetricsCache) -> None:
        if cache.document_id != self.store.active_document_id:
            return
        if self.decoration_sink is not None:
            self.decoration_sink.apply(
                cache.document_id,
                build_decorations(cache, self.mapper, self.base_color),
                cache.version,
            )
        if self._listeners:
            snapshot = MetricsSnapshot.of(cache)
            for listener in self._listeners:
                listener(snapshot)
