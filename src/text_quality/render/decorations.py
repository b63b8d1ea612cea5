"""Per-line styles for the host editor's decoration sink."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from text_quality.pipeline.cache import MetricsCache
from text_quality.render.colors import ColorMapper


@dataclass(slots=True, frozen=True)
class LineDecoration:
    line: int
    background: str
    color: str

    @property
    def style(self) -> str:
        return f"background-color: {self.background}; color: {self.color};"


class DecorationSink(Protocol):
    def apply(self, document_id: str, decorations: list[LineDecoration], version: int) -> None:
        """Replace all decorations of `document_id` with `decorations`."""


def build_decorations(
    cache: MetricsCache,
    mapper: ColorMapper,
    base_color: str | None = None,
) -> list[LineDecoration]:
    """One decoration per source line of every analyzed paragraph."""

    decorations: list[LineDecoration] = []
    for index, paragraph in enumerate(cache.paragraphs):
        snr, complexity = cache.normalized(index, enabled=mapper.config.normalize)
        background = mapper.background_for(snr, base_color)
        color = mapper.text_color_for(complexity)
        for line in range(paragraph.start_line, paragraph.end_line + 1):
            decorations.append(LineDecoration(line=line, background=background, color=color))
    return decorations
