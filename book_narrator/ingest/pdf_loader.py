"""PDF ingestion utilities."""

from __future__ import annotations

import collections
import logging
from typing import List, Set, Tuple

from pypdf import PdfReader

LOGGER = logging.getLogger(__name__)


class PdfLoader:
    """Extract the running text of a PDF, minus repeated page furniture.

    Chapter boundaries are not derived here; the result is meant for
    :func:`book_narrator.text.segmenter.segment`.
    """

    def __init__(self, *, common_threshold: float = 0.4, min_pages: int = 3) -> None:
        self.common_threshold = common_threshold
        self.min_pages = min_pages

    def load_text(self, path: str) -> str:
        reader = PdfReader(path)
        page_texts = [page.extract_text() or "" for page in reader.pages]
        LOGGER.debug("Extracted %d pages from %s", len(page_texts), path)
        return self.join_pages(page_texts)

    def join_pages(self, page_texts: List[str]) -> str:
        """Join page texts, dropping first/last lines that repeat across pages."""

        headers: Set[str] = set()
        footers: Set[str] = set()
        if len(page_texts) >= self.min_pages:
            headers, footers = self._repeated_edges(page_texts)
        if headers or footers:
            LOGGER.debug("Stripping repeated headers %s and footers %s", sorted(headers), sorted(footers))
        pages = [self._trim_edges(text, headers, footers) for text in page_texts]
        return "\n".join(page for page in pages if page)

    def _repeated_edges(self, page_texts: List[str]) -> Tuple[Set[str], Set[str]]:
        firsts: collections.Counter = collections.Counter()
        lasts: collections.Counter = collections.Counter()
        for lines in map(_content_lines, page_texts):
            if lines:
                firsts[lines[0]] += 1
                lasts[lines[-1]] += 1
        needed = max(2, int(len(page_texts) * self.common_threshold))
        return (
            {line for line, seen in firsts.items() if seen >= needed},
            {line for line, seen in lasts.items() if seen >= needed},
        )

    def _trim_edges(self, text: str, headers: Set[str], footers: Set[str]) -> str:
        lines = (text or "").replace("\r\n", "\n").strip().split("\n")
        if lines and lines[0].strip() in headers:
            lines = lines[1:]
        if lines and lines[-1].strip() in footers:
            lines = lines[:-1]
        return "\n".join(lines).strip()


def _content_lines(text: str) -> List[str]:
    return [line.strip() for line in (text or "").replace("\r\n", "\n").split("\n") if line.strip()]


__all__ = ["PdfLoader"]
