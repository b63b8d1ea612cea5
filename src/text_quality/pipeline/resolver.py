"""Backend selection with ordered fallback."""

from __future__ import annotations

import logging
from collections.abc import Callable

from text_quality.backends.base import ScoringBackend, is_cancelled
from text_quality.backends.http import HttpScoringBackend
from text_quality.backends.llm import LlmScoringBackend
from text_quality.config import AnalyzerConfig
from text_quality.obs.tracing import Timer, TraceStore
from text_quality.scoring.heuristic import heuristic_metrics
from text_quality.types import AnalysisContext, Metric, Notice, NoticeKind, Resolution

logger = logging.getLogger(__name__)

HEURISTIC = "heuristic"


class MetricsResolver:
    """Resolves a full metrics array from exactly one backend.

    Tier order per mode:
    - `heuristic`: local scorer only.
    - `server`: HTTP service, then heuristic.
    - `llm`: LLM provider, then heuristic.
    - `auto`: HTTP service, LLM provider, then heuristic.

    The first backend returning a same-length result populates the whole
    array; results are never mixed across backends. `resolve` never raises and
    always returns exactly one metric per input paragraph.
    """

    def __init__(
        self,
        *,
        http_backend: ScoringBackend | None = None,
        llm_backend: ScoringBackend | None = None,
        trace_store: TraceStore | None = None,
    ) -> None:
        self.http_backend = http_backend or HttpScoringBackend()
        self.llm_backend = llm_backend or LlmScoringBackend()
        self.trace_store = trace_store or TraceStore()
        self._observer: Callable[[Notice], None] | None = None

    def set_observer(self, observer: Callable[[Notice], None] | None) -> None:
        """Set an optional callback invoked with every fallback notice."""
        self._observer = observer

    async def resolve(
        self,
        paragraphs: list[str],
        config: AnalyzerConfig,
        *,
        context: AnalysisContext | None = None,
        subject: str | None = None,
        partial: bool = False,
    ) -> Resolution:
        attempted: list[str] = []
        with Timer() as timer:
            resolution = await self._resolve(
                paragraphs, config, attempted, context=context, subject=subject
            )
        resolution.attempted = attempted

        self.trace_store.create_record(
            mode=config.backend_mode,
            attempted=attempted,
            backend=resolution.backend,
            paragraph_count=len(paragraphs),
            partial=partial,
            notice=resolution.notice.kind.value if resolution.notice else None,
            latency_ms=timer.elapsed_ms,
            cancelled=resolution.cancelled,
        )
        if resolution.notice is not None:
            logger.warning(resolution.notice.message)
            if self._observer is not None:
                self._observer(resolution.notice)
        else:
            logger.debug(
                "Resolved %d paragraphs with %s backend", len(paragraphs), resolution.backend
            )
        return resolution

    def tiers(self, config: AnalyzerConfig) -> list[ScoringBackend]:
        if config.backend_mode == "server":
            return [self.http_backend]
        if config.backend_mode == "llm":
            return [self.llm_backend]
        if config.backend_mode == "auto":
            return [self.http_backend, self.llm_backend]
        return []

    async def _resolve(
        self,
        paragraphs: list[str],
        config: AnalyzerConfig,
        attempted: list[str],
        *,
        context: AnalysisContext | None,
        subject: str | None,
    ) -> Resolution:
        if not paragraphs:
            return Resolution(metrics=[], backend=HEURISTIC)

        for backend in self.tiers(config):
            if is_cancelled(context):
                return self._heuristic(paragraphs, config, cancelled=True)
            attempted.append(backend.name)
            metrics = await self._try_backend(
                backend, paragraphs, config, context=context, subject=subject
            )
            if metrics is not None:
                return Resolution(metrics=metrics, backend=backend.name)

        if is_cancelled(context):
            return self._heuristic(paragraphs, config, cancelled=True)
        return self._heuristic(paragraphs, config, notice=self._fallback_notice(config))

    async def _try_backend(
        self,
        backend: ScoringBackend,
        paragraphs: list[str],
        config: AnalyzerConfig,
        *,
        context: AnalysisContext | None,
        subject: str | None,
    ) -> list[Metric] | None:
        try:
            metrics = await backend.score(
                paragraphs, config, context=context, subject=subject
            )
        except Exception as exc:  # a backend leaking an error still only costs its tier
            logger.warning("Backend %s raised instead of returning None: %s", backend.name, exc)
            return None
        if metrics is None:
            logger.info("Backend %s unavailable; trying next tier", backend.name)
            return None
        if len(metrics) != len(paragraphs):
            logger.warning(
                "Backend %s returned %d metrics for %d paragraphs",
                backend.name,
                len(metrics),
                len(paragraphs),
            )
            return None
        return metrics

    @staticmethod
    def _fallback_notice(config: AnalyzerConfig) -> Notice | None:
        if config.backend_mode == "server":
            return Notice(NoticeKind.SERVER_UNAVAILABLE)
        if config.backend_mode == "llm":
            if not config.api_key:
                return Notice(NoticeKind.MISSING_CREDENTIAL)
            return Notice(NoticeKind.LLM_FAILED)
        if config.backend_mode == "auto":
            return Notice(NoticeKind.ALL_BACKENDS_FAILED)
        return None

    @staticmethod
    def _heuristic(
        paragraphs: list[str],
        config: AnalyzerConfig,
        *,
        notice: Notice | None = None,
        cancelled: bool = False,
    ) -> Resolution:
        return Resolution(
            metrics=heuristic_metrics(paragraphs, config.topic, config.readability_script),
            backend=HEURISTIC,
            notice=notice,
            cancelled=cancelled,
        )
