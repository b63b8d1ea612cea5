"""Offline heuristic scoring: lexical uniqueness, LIX/SMOG complexity, topic hits.

Every public function here is pure and total. Empty or degenerate input
yields 0 (or `None` for the raw readability indices), never an exception.

Readability notes:
- LIX = words / sentences + 100 * long_words / words, where a long word has
  more than six letters.
- SMOG = 1.043 * sqrt(polysyllables * 30 / sentences) + 3.1291. It is only
  considered valid for three or more sentences.
- Both indices only count alphabetic words (two letters or more) of the
  targeted script; syllables are approximated by counting vowel letters.
- Each index is normalized against a fixed empirical scale and the complexity
  score is the mean of whichever normalized values are defined.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Literal

from text_quality.types import Metric

ScriptName = Literal["cyrillic", "latin"]

LIX_SCALE = (0.0, 80.0)
SMOG_SCALE = (3.0, 20.0)
SMOG_MIN_SENTENCES = 3
LONG_WORD_MIN_LETTERS = 7
POLYSYLLABLE_MIN_VOWELS = 3
TOPIC_SATURATION = 3

_SENTENCE_SPLIT = re.compile(r"[.!?…]+\s*")
_NON_WORD = re.compile(r"[\W_]+", flags=re.UNICODE)


@dataclass(slots=True, frozen=True)
class ScriptProfile:
    """Word pattern and vowel letters for one writing system."""

    name: str
    word_pattern: re.Pattern[str]
    vowels: frozenset[str]


SCRIPTS: dict[str, ScriptProfile] = {
    "cyrillic": ScriptProfile(
        name="cyrillic",
        word_pattern=re.compile(r"[А-Яа-яЁё]{2,}"),
        vowels=frozenset("аеёиоуыэюя"),
    ),
    "latin": ScriptProfile(
        name="latin",
        word_pattern=re.compile(r"[A-Za-z]{2,}"),
        vowels=frozenset("aeiouy"),
    ),
}


def snr(paragraph: str) -> float:
    """Distinct cleaned tokens divided by all whitespace tokens."""

    words = paragraph.split()
    if not words:
        return 0.0
    cleaned = {_NON_WORD.sub("", word).lower() for word in words}
    cleaned.discard("")
    return len(cleaned) / len(words)


def topic_score(paragraph: str, topic: str) -> float:
    """Case-insensitive topic occurrences, saturating at three hits."""

    if not topic:
        return 0.0
    occurrences = paragraph.lower().count(topic.lower())
    return min(1.0, occurrences / TOPIC_SATURATION)


def split_sentences(text: str) -> list[str]:
    if not text:
        return []
    normalized = text.replace("\r\n", "\n")
    return [part.strip() for part in _SENTENCE_SPLIT.split(normalized) if part.strip()]


def extract_words(text: str, script: ScriptName = "cyrillic") -> list[str]:
    return SCRIPTS[script].word_pattern.findall(text)


def count_syllables(word: str, script: ScriptName = "cyrillic") -> int:
    vowels = SCRIPTS[script].vowels
    count = sum(1 for char in word.lower() if char in vowels)
    return count if count > 0 else 1


def lix_index(text: str, script: ScriptName = "cyrillic") -> float | None:
    if not text or not text.strip():
        return None
    sentences = split_sentences(text)
    if not sentences:
        return None
    words = extract_words(text, script)
    if not words:
        return None
    long_words = sum(1 for word in words if len(word) >= LONG_WORD_MIN_LETTERS)
    value = len(words) / len(sentences) + 100.0 * (long_words / len(words))
    return round(value, 3)


def smog_index(text: str, script: ScriptName = "cyrillic") -> tuple[float | None, bool]:
    """Return `(smog, valid)`; `valid` is False below three sentences."""

    if not text or not text.strip():
        return None, False
    sentences = split_sentences(text)
    if not sentences:
        return None, False
    valid = len(sentences) >= SMOG_MIN_SENTENCES
    words = extract_words(text, script)
    if not words:
        return None, valid
    polysyllables = sum(
        1 for word in words if count_syllables(word, script) >= POLYSYLLABLE_MIN_VOWELS
    )
    value = 1.043 * math.sqrt(polysyllables * (30.0 / len(sentences))) + 3.1291
    return round(value, 3), valid


def normalize_score(value: float | None, low: float, high: float) -> float | None:
    """Clip `value` into `[low, high]` and rescale to [0, 1]; `None` if undefined."""

    if value is None or not math.isfinite(value):
        return None
    if high == low:
        return 0.0
    clipped = min(max(value, low), high)
    return round((clipped - low) / (high - low), 3)


def calculate_complexity(
    lix: float | None,
    smog: float | None,
    smog_valid: bool = True,
) -> float:
    normalized = [normalize_score(lix, *LIX_SCALE)]
    if smog_valid:
        normalized.append(normalize_score(smog, *SMOG_SCALE))
    defined = [value for value in normalized if value is not None]
    if not defined:
        return 0.0
    return round(sum(defined) / len(defined), 3)


def complexity(paragraph: str, script: ScriptName = "cyrillic") -> float:
    smog, smog_valid = smog_index(paragraph, script)
    return calculate_complexity(lix_index(paragraph, script), smog, smog_valid)


def score_paragraph(paragraph: str, topic: str = "", script: ScriptName = "cyrillic") -> Metric:
    return Metric(
        snr=snr(paragraph),
        complexity=complexity(paragraph, script),
        topic=topic_score(paragraph, topic),
        role="",
    )


def heuristic_metrics(
    paragraphs: list[str],
    topic: str = "",
    script: ScriptName = "cyrillic",
) -> list[Metric]:
    return [score_paragraph(paragraph, topic, script) for paragraph in paragraphs]
