"""LLM provider backend: embedding similarity or direct chat scoring.

Two SNR strategies are available through `AnalyzerConfig.snr_method`:

- `embedding`: embed `[subject] + paragraphs` in one batched call and score
  each paragraph by cosine similarity to the subject, mapped onto [0, 1].
  The subject is the configured topic, or the first paragraph when no topic
  is set. Complexity always comes from the local heuristic scorer.
- `llm`: ask the chat model for a JSON object `{"scores": [...],
  "complexity": [...]}` covering all paragraphs at once. The reply is decoded
  leniently and length-corrected. An undecodable reply, or one whose scores
  are all exactly zero, falls back to the embedding strategy.

Role classification is an independent, optional pass: one chat call per
paragraph choosing a label from `ROLE_LABELS`. A failed call leaves that
paragraph's role empty without failing the batch.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any

from langchain_core.messages import HumanMessage, SystemMessage

from text_quality.backends.base import ScoringBackend, is_cancelled
from text_quality.backends.lenient_json import LenientJSONError, loads_lenient
from text_quality.config import AnalyzerConfig
from text_quality.scoring.embedder import (
    Embedder,
    LangChainEmbedder,
    SubjectEmbeddingCache,
    cosine_similarity,
)
from text_quality.scoring.heuristic import complexity as heuristic_complexity
from text_quality.types import AnalysisContext, Metric, clamp01

logger = logging.getLogger(__name__)

ROLE_LABELS: tuple[str, ...] = (
    "humor",
    "assertion",
    "theme development",
    "analogy explanation",
    "example",
    "contrast",
    "background information",
    "conclusion",
    "question",
    "other",
)

_ROLE_PROMPT = (
    "You are a semantic classifier. Given a paragraph of text, classify its "
    "semantic role into one of the following categories: "
    + ", ".join(ROLE_LABELS)
    + ". Respond with only the label that best fits the paragraph."
)

_SCORING_PROMPT = """
You rate paragraphs of a single document.

For each of the {count} paragraphs below, in order, return:
- "scores": relevance of the paragraph to the subject, from 0 (noise) to 1 (pure signal).
- "complexity": reading difficulty, from 0 (very simple) to 1 (very complex).

Subject: {subject}

Respond with a JSON object only, exactly of the form
{{"scores": [...], "complexity": [...]}}
where both arrays contain exactly {count} numbers between 0 and 1.
""".strip()

EmbedderFactory = Callable[[AnalyzerConfig], Embedder]
ChatFactory = Callable[..., Any]


def _default_embedder(config: AnalyzerConfig) -> Embedder:
    from langchain_openai import OpenAIEmbeddings

    embeddings = OpenAIEmbeddings(
        model=config.embedding_model,
        api_key=config.api_key,
        base_url=config.llm_base_url,
    )
    return LangChainEmbedder(embeddings, model=config.embedding_model)


def _default_chat(config: AnalyzerConfig, *, json_mode: bool = False) -> Any:
    from langchain_openai import ChatOpenAI

    model_kwargs: dict[str, Any] = {}
    if json_mode:
        model_kwargs["response_format"] = {"type": "json_object"}
    return ChatOpenAI(
        model=config.chat_model,
        api_key=config.api_key,
        base_url=config.llm_base_url,
        temperature=0,
        model_kwargs=model_kwargs,
    )


class LlmScoringBackend(ScoringBackend):
    """Scores paragraphs through an embedding + chat-completion provider pair."""

    name = "llm"

    def __init__(
        self,
        *,
        embedder_factory: EmbedderFactory | None = None,
        chat_factory: ChatFactory | None = None,
        subject_cache: SubjectEmbeddingCache | None = None,
    ) -> None:
        self._embedder_factory = embedder_factory or _default_embedder
        self._chat_factory = chat_factory or _default_chat
        self.subject_cache = subject_cache or SubjectEmbeddingCache()

    def is_configured(self, config: AnalyzerConfig) -> bool:
        return bool(config.api_key)

    async def score(
        self,
        paragraphs: list[str],
        config: AnalyzerConfig,
        *,
        context: AnalysisContext | None = None,
        subject: str | None = None,
    ) -> list[Metric] | None:
        if not self.is_configured(config):
            logger.debug("LLM backend skipped: no API key configured")
            return None
        if not paragraphs:
            return []

        resolved_subject = _resolve_subject(paragraphs, config.topic, subject)
        try:
            if config.snr_method == "llm":
                scored = await self._score_direct(paragraphs, resolved_subject, config, context)
            else:
                scored = await self._score_embedding(
                    paragraphs, resolved_subject, config, context
                )
            if scored is None:
                return None
            roles = await self._classify_roles(paragraphs, config, context)
        except Exception as exc:  # provider SDKs raise their own error hierarchies
            logger.warning("LLM scoring failed: %s", exc)
            return None

        if is_cancelled(context):
            return None

        snr_values, complexity_values = scored
        return [
            Metric(snr=snr, complexity=complexity, topic=snr, role=role)
            for snr, complexity, role in zip(snr_values, complexity_values, roles, strict=True)
        ]

    async def _score_embedding(
        self,
        paragraphs: list[str],
        subject: str,
        config: AnalyzerConfig,
        context: AnalysisContext | None,
    ) -> tuple[list[float], list[float]] | None:
        if is_cancelled(context):
            return None
        embedder = self._embedder_factory(config)
        model = embedder.model or config.embedding_model
        subject_vector = self.subject_cache.get(subject, model)

        if subject_vector is None:
            vectors = await embedder.embed([subject, *paragraphs])
            if len(vectors) != len(paragraphs) + 1:
                raise ValueError("embedding count does not match input count")
            subject_vector, paragraph_vectors = vectors[0], vectors[1:]
            self.subject_cache.put(subject, model, subject_vector)
        else:
            logger.debug("Reusing cached subject embedding for model %s", model)
            paragraph_vectors = await embedder.embed(list(paragraphs))
            if len(paragraph_vectors) != len(paragraphs):
                raise ValueError("embedding count does not match input count")

        if is_cancelled(context):
            return None
        snr_values = [
            clamp01(cosine_similarity(subject_vector, vector)) for vector in paragraph_vectors
        ]
        complexity_values = [
            heuristic_complexity(paragraph, config.readability_script) for paragraph in paragraphs
        ]
        return snr_values, complexity_values

    async def _score_direct(
        self,
        paragraphs: list[str],
        subject: str,
        config: AnalyzerConfig,
        context: AnalysisContext | None,
    ) -> tuple[list[float], list[float]] | None:
        if is_cancelled(context):
            return None
        chat = self._chat_factory(config, json_mode=True)
        numbered = "\n\n".join(
            f"[{idx}] {paragraph}" for idx, paragraph in enumerate(paragraphs, start=1)
        )
        reply = await chat.ainvoke(
            [
                SystemMessage(
                    content=_SCORING_PROMPT.format(count=len(paragraphs), subject=subject)
                ),
                HumanMessage(content=numbered),
            ]
        )
        if is_cancelled(context):
            return None

        parsed = parse_direct_scores(_message_text(reply), len(paragraphs))
        if parsed is None:
            logger.warning("Direct LLM scores unusable; falling back to embedding similarity")
            return await self._score_embedding(paragraphs, subject, config, context)

        scores, complexity_values = parsed
        if complexity_values is None:
            complexity_values = [
                heuristic_complexity(paragraph, config.readability_script)
                for paragraph in paragraphs
            ]
        return scores, complexity_values

    async def _classify_roles(
        self,
        paragraphs: list[str],
        config: AnalyzerConfig,
        context: AnalysisContext | None,
    ) -> list[str]:
        if not config.classify_roles:
            return ["" for _ in paragraphs]
        chat = self._chat_factory(config, json_mode=False)
        results = await asyncio.gather(
            *(self._classify_one(chat, paragraph, context) for paragraph in paragraphs),
            return_exceptions=True,
        )
        roles: list[str] = []
        for result in results:
            if isinstance(result, BaseException):
                logger.warning("Role classification failed for one paragraph: %s", result)
                roles.append("")
            else:
                roles.append(result)
        return roles

    async def _classify_one(
        self, chat: Any, paragraph: str, context: AnalysisContext | None
    ) -> str:
        if is_cancelled(context):
            return ""
        reply = await chat.ainvoke(
            [SystemMessage(content=_ROLE_PROMPT), HumanMessage(content=paragraph)]
        )
        return normalize_role(_message_text(reply))


def parse_direct_scores(
    raw: str, count: int
) -> tuple[list[float], list[float] | None] | None:
    """Decode a direct-scoring reply into `(scores, complexity)`.

    Returns `None` when the payload cannot be decoded, has no `scores` array,
    or every score is exactly zero. Arrays are clamped and truncated or
    zero-padded to `count` entries.
    """

    try:
        payload = loads_lenient(raw)
    except LenientJSONError as exc:
        logger.warning("Could not decode direct scoring reply: %s", exc)
        return None

    if isinstance(payload, list):
        payload = {"scores": payload}
    if not isinstance(payload, dict) or not isinstance(payload.get("scores"), list):
        return None

    scores = _fit_length(payload["scores"], count)
    if all(score == 0.0 for score in scores):
        return None

    complexity_raw = payload.get("complexity")
    complexity_values = (
        _fit_length(complexity_raw, count) if isinstance(complexity_raw, list) else None
    )
    return scores, complexity_values


def normalize_role(raw: str) -> str:
    label = raw.strip().strip("\"'`.!").strip().lower()
    if not label:
        return "other"
    if label in ROLE_LABELS:
        return label
    for known in ROLE_LABELS:
        if known in label:
            return known
    return "other"


def _fit_length(values: list[Any], count: int) -> list[float]:
    fitted = [_to_score(value) for value in values[:count]]
    fitted.extend(0.0 for _ in range(count - len(fitted)))
    return fitted


def _to_score(value: Any) -> float:
    if isinstance(value, str):
        try:
            return clamp01(float(value))
        except ValueError:
            return 0.0
    return clamp01(value)


def _resolve_subject(paragraphs: list[str], topic: str, subject: str | None) -> str:
    if topic and topic.strip():
        return topic
    if subject:
        return subject
    return paragraphs[0] if paragraphs else ""


def _message_text(message: Any) -> str:
    content = getattr(message, "content", message)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return " ".join(parts).strip()
    if isinstance(content, dict):
        return json.dumps(content)
    return str(content)
