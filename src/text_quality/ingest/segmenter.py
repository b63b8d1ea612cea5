"""Blank-line paragraph segmentation."""

from __future__ import annotations

import re

from text_quality.types import Paragraph

# Two or more line breaks, with CRLF treated as a single break.
_PARAGRAPH_BREAK = re.compile(r"(?:\r?\n){2,}")


def segment(text: str) -> list[Paragraph]:
    """Split `text` into ordered, trimmed, non-empty paragraphs.

    Offsets and line numbers refer to the raw input so that editor change
    ranges can be matched against them directly. Paragraph text itself has
    its line endings normalized to `\\n`.
    """

    if not text or not text.strip():
        return []

    paragraphs: list[Paragraph] = []
    for piece_start, piece_end in _pieces(text):
        piece = text[piece_start:piece_end]
        stripped = piece.strip()
        if not stripped:
            continue
        start = piece_start + (len(piece) - len(piece.lstrip()))
        end = start + len(stripped)
        start_line = text.count("\n", 0, start)
        paragraphs.append(
            Paragraph(
                index=len(paragraphs),
                text=stripped.replace("\r\n", "\n"),
                start=start,
                end=end,
                start_line=start_line,
                end_line=start_line + text.count("\n", start, end),
            )
        )
    return paragraphs


def paragraph_texts(text: str) -> list[str]:
    return [paragraph.text for paragraph in segment(text)]


def _pieces(text: str) -> list[tuple[int, int]]:
    bounds: list[tuple[int, int]] = []
    start = 0
    for match in _PARAGRAPH_BREAK.finditer(text):
        bounds.append((start, match.start()))
        start = match.end()
    bounds.append((start, len(text)))
    return bounds
