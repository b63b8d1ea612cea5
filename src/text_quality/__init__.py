"""Paragraph quality analysis: signal-to-noise and readability complexity."""

from .config import AnalyzerConfig, ColorConfig, PipelineConfig

__all__ = ["AnalyzerConfig", "ColorConfig", "PipelineConfig"]
