"""HTTP scoring service adapter."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from text_quality.backends.base import ScoringBackend, is_cancelled
from text_quality.config import AnalyzerConfig
from text_quality.types import AnalysisContext, Metric

logger = logging.getLogger(__name__)


class HttpScoringBackend(ScoringBackend):
    """POSTs `{paragraphs, topic}` to the configured endpoint.

    The response must be a JSON array with exactly one metric-shaped object
    per paragraph. Anything else (malformed endpoint, transport error, non-2xx
    status, bad shape) yields `None`.
    """

    name = "server"

    def __init__(self, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    def is_configured(self, config: AnalyzerConfig) -> bool:
        return bool(config.http_endpoint)

    async def score(
        self,
        paragraphs: list[str],
        config: AnalyzerConfig,
        *,
        context: AnalysisContext | None = None,
        subject: str | None = None,
    ) -> list[Metric] | None:
        del subject  # the service derives relevance from the topic alone.
        if not self.is_configured(config):
            logger.debug("HTTP backend skipped: no endpoint configured")
            return None
        if is_cancelled(context):
            return None

        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=config.http_timeout_seconds,
            ) as client:
                response = await client.post(
                    config.http_endpoint,
                    json={"paragraphs": paragraphs, "topic": config.topic},
                )
                response.raise_for_status()
                payload: Any = response.json()
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            logger.warning("HTTP scoring request to %s failed: %s", config.http_endpoint, exc)
            return None

        if is_cancelled(context):
            return None
        return _parse_metrics(payload, len(paragraphs))


def _parse_metrics(payload: Any, expected: int) -> list[Metric] | None:
    if not isinstance(payload, list):
        logger.warning("HTTP scoring response is not a JSON array")
        return None
    if len(payload) != expected:
        logger.warning(
            "HTTP scoring response has %d items for %d paragraphs", len(payload), expected
        )
        return None
    try:
        return [Metric.from_payload(item) for item in payload]
    except TypeError as exc:
        logger.warning("HTTP scoring response has malformed items: %s", exc)
        return None
