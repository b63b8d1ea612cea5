"""Test doubles shared by unit and integration tests."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from text_quality.backends.base import ScoringBackend, is_cancelled
from text_quality.config import AnalyzerConfig
from text_quality.types import AnalysisContext, Metric


class FakeBackend(ScoringBackend):
    """Backend returning a fixed score (or `None`) and recording calls."""

    def __init__(
        self,
        name: str,
        *,
        snr: float | None = 0.5,
        role: str = "",
        error: Exception | None = None,
        length_delta: int = 0,
    ) -> None:
        self.name = name
        self.snr = snr
        self.role = role
        self.error = error
        self.length_delta = length_delta
        self.calls: list[list[str]] = []
        self.subjects: list[str | None] = []

    async def score(
        self,
        paragraphs: list[str],
        config: AnalyzerConfig,
        *,
        context: AnalysisContext | None = None,
        subject: str | None = None,
    ) -> list[Metric] | None:
        self.calls.append(list(paragraphs))
        self.subjects.append(subject)
        if self.error is not None:
            raise self.error
        if self.snr is None or is_cancelled(context):
            return None
        count = len(paragraphs) + self.length_delta
        return [
            Metric(snr=self.snr, complexity=0.5, topic=self.snr, role=self.role)
            for _ in range(max(0, count))
        ]


class GatedBackend(FakeBackend):
    """Blocks its first call until `release()` so cancellation can be observed."""

    def __init__(self, name: str = "server", *, snr: float = 0.9) -> None:
        super().__init__(name, snr=snr)
        self.entered = asyncio.Event()
        self._gate = asyncio.Event()
        self._first = True

    def release(self) -> None:
        self._gate.set()

    async def score(
        self,
        paragraphs: list[str],
        config: AnalyzerConfig,
        *,
        context: AnalysisContext | None = None,
        subject: str | None = None,
    ) -> list[Metric] | None:
        if self._first:
            self._first = False
            self.entered.set()
            await self._gate.wait()
        return await super().score(paragraphs, config, context=context, subject=subject)


@dataclass
class FakeMessage:
    content: Any


class FakeChat:
    """Chat model double: replies are looked up by a substring of the user turn."""

    def __init__(
        self,
        replies: dict[str, str] | None = None,
        *,
        default: str = "other",
        failures: tuple[str, ...] = (),
    ) -> None:
        self.replies = replies or {}
        self.default = default
        self.failures = failures
        self.calls: list[list[Any]] = []

    async def ainvoke(self, messages: list[Any]) -> FakeMessage:
        self.calls.append(messages)
        user_text = str(messages[-1].content)
        for marker in self.failures:
            if marker in user_text:
                raise RuntimeError(f"provider rejected: {marker}")
        for marker, reply in self.replies.items():
            if marker in user_text:
                return FakeMessage(content=reply)
        return FakeMessage(content=self.default)


class RecordingSink:
    def __init__(self) -> None:
        self.applied: list[tuple[str, list[Any], int]] = []

    def apply(self, document_id: str, decorations: list[Any], version: int) -> None:
        self.applied.append((document_id, decorations, version))
