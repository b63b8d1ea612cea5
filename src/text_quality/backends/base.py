"""Common contract for remote scoring backends."""

from __future__ import annotations

from abc import ABC, abstractmethod

from text_quality.config import AnalyzerConfig
from text_quality.types import AnalysisContext, Metric


class ScoringBackend(ABC):
    """Scores a batch of paragraphs or returns `None` on any failure.

    Implementations must never let an exception escape `score`; a `None`
    result tells the resolver to move on to the next tier.
    """

    name: str = "backend"

    @abstractmethod
    async def score(
        self,
        paragraphs: list[str],
        config: AnalyzerConfig,
        *,
        context: AnalysisContext | None = None,
        subject: str | None = None,
    ) -> list[Metric] | None:
        """Return one metric per paragraph, in order, or `None`.

        `subject` overrides the implicit subject (topic or first paragraph)
        when only a subset of a document is being scored.
        """

    def is_configured(self, config: AnalyzerConfig) -> bool:
        return True


def is_cancelled(context: AnalysisContext | None) -> bool:
    return context is not None and context.cancelled
