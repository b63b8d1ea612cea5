"""Embedding abstractions, similarity and the subject-embedding cache."""

from __future__ import annotations

from abc import ABC, abstractmethod
from hashlib import blake2b
from math import sqrt
from typing import Any


class Embedder(ABC):
    """Embedder interface used by the LLM backend."""

    model: str = ""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed many texts in one batched call, preserving order."""


class HashingEmbedder(Embedder):
    """Deterministic sparse-like embedding without external model calls.

    Used for local tests and offline runs of the embedding strategy.
    """

    model = "hashing"

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension
        self.calls: list[list[str]] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self._embed(text) for text in texts]

    def _embed(self, text: str) -> list[float]:
        vector = [0.0 for _ in range(self.dimension)]
        tokens = text.lower().split()
        if not tokens:
            return vector

        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            sign = -1.0 if digest[4] % 2 else 1.0
            vector[idx] += sign

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]


class LangChainEmbedder(Embedder):
    """Adapter over a LangChain `Embeddings` object (e.g. `OpenAIEmbeddings`)."""

    def __init__(self, embeddings: Any, model: str) -> None:
        self._embeddings = embeddings
        self.model = model

    async def embed(self, texts: list[str]) -> list[list[float]]:
        vectors = await self._embeddings.aembed_documents(texts)
        if len(vectors) != len(texts):
            raise ValueError(
                f"embedding provider returned {len(vectors)} vectors for {len(texts)} inputs"
            )
        return [list(map(float, vector)) for vector in vectors]


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity mapped from [-1, 1] onto [0, 1].

    Zero vectors compare as 0. Vectors of unequal length are compared over
    their common prefix.
    """

    dot = norm_a = norm_b = 0.0
    for left, right in zip(a, b):
        dot += left * right
        norm_a += left * left
        norm_b += right * right
    if norm_a == 0 or norm_b == 0:
        return 0.0
    similarity = dot / (sqrt(norm_a) * sqrt(norm_b))
    similarity = max(-1.0, min(1.0, similarity))
    return (similarity + 1.0) / 2.0


class SubjectEmbeddingCache:
    """Remembers subject/topic vectors keyed by `(text, model)`."""

    def __init__(self, max_entries: int = 32) -> None:
        self.max_entries = max_entries
        self._vectors: dict[tuple[str, str], list[float]] = {}

    def get(self, text: str, model: str) -> list[float] | None:
        return self._vectors.get((text, model))

    def put(self, text: str, model: str, vector: list[float]) -> None:
        key = (text, model)
        self._vectors.pop(key, None)
        self._vectors[key] = vector
        while len(self._vectors) > self.max_entries:
            self._vectors.pop(next(iter(self._vectors)))

    def clear(self) -> None:
        self._vectors.clear()

    def __len__(self) -> int:
        return len(self._vectors)
