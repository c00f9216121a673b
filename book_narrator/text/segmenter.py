"""Split a book's running text into chapters.

Two strategies, chosen by how many chapter headings the text contains:

* two or more headings: split on the heading lines, keeping them, and walk the
  pieces left to right pairing each heading with the body that follows it;
* otherwise: fixed-size blocks, so every non-empty book yields at least one
  chapter.

A piece counts as a heading when it matches the heading pattern *or* is
shorter than ``short_title_threshold``. The length rule catches headings the
pattern misses, and also turns any short stray line into a chapter title.
Heading-like lines inside dialogue are taken as headings too. Both are known
limitations of the heuristic and are kept deliberately so existing books keep
their segmentation.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from .. import config
from ..ingest import Chapter
from .normalize import normalize_line_endings

logger = logging.getLogger(__name__)

HEADING_WORDS = ("chapter", "cap[ií]tulo", "chapitre", "kapitel")
_HEADING = r"(?:%s)[ \t]+\d+[^\n]*" % "|".join(HEADING_WORDS)

# Capturing group so re.split keeps the headings between the bodies.
HEADING_SPLIT_RE = re.compile(r"^[ \t]*(%s)$" % _HEADING, re.IGNORECASE | re.MULTILINE)
HEADING_LINE_RE = re.compile(_HEADING, re.IGNORECASE)


class ChapterSegmenter:
    """Deterministic heading/blocking chapter detection."""

    def __init__(
        self,
        *,
        short_title_threshold: int = config.SHORT_TITLE_THRESHOLD,
        block_size: int = config.BLOCK_SIZE,
    ) -> None:
        if block_size <= 0:
            raise ValueError("block_size must be positive")
        self.short_title_threshold = short_title_threshold
        self.block_size = block_size

    def segment(self, raw_text: str) -> List[Chapter]:
        text = normalize_line_endings(raw_text or "")
        if not text.strip():
            return []

        heading_count = len(HEADING_SPLIT_RE.findall(text))
        if heading_count >= 2:
            chapters = self._split_on_headings(text)
            logger.debug("Found %d chapter headings, built %d chapters", heading_count, len(chapters))
        else:
            chapters = self._split_into_blocks(text)
            logger.debug(
                "No chapter headings found, split into %d blocks of %d characters",
                len(chapters),
                self.block_size,
            )
        return chapters

    def is_heading(self, piece: str) -> bool:
        return bool(HEADING_LINE_RE.fullmatch(piece)) or len(piece) < self.short_title_threshold

    def _split_on_headings(self, text: str) -> List[Chapter]:
        pieces = [piece.strip() for piece in HEADING_SPLIT_RE.split(text) if piece.strip()]

        titles: List[Optional[str]] = []
        bodies: List[str] = []
        position = 0
        while position < len(pieces):
            piece = pieces[position]
            if self.is_heading(piece):
                titles.append(piece)
                bodies.append(pieces[position + 1] if position + 1 < len(pieces) else "")
                position += 2
                continue
            if bodies:
                bodies[-1] = f"{bodies[-1]}\n\n{piece}" if bodies[-1] else piece
            else:
                titles.append(None)
                bodies.append(piece)
            position += 1

        return [
            Chapter(index=index, title=title, text=body)
            for index, (title, body) in enumerate(zip(titles, bodies))
        ]

    def _split_into_blocks(self, text: str) -> List[Chapter]:
        return [
            Chapter(index=index, title=None, text=text[start : start + self.block_size])
            for index, start in enumerate(range(0, len(text), self.block_size))
        ]


def segment(raw_text: str) -> List[Chapter]:
    """Segment *raw_text* with the configured defaults."""

    return ChapterSegmenter().segment(raw_text)


__all__ = ["ChapterSegmenter", "HEADING_SPLIT_RE", "segment"]
