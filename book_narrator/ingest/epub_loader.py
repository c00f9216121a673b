"""EPUB ingestion utilities."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re
from html import unescape
from typing import Iterable, Iterator, List, Optional

import ebooklib
from ebooklib import epub

from . import Chapter

LOGGER = logging.getLogger(__name__)

DEFAULT_BOOK_TITLE = "Untitled book"


@dataclass
class TocEntry:
    title: Optional[str]
    href: str


@dataclass
class ParsedBook:
    """Book title plus the pre-tagged sections of an EPUB."""

    title: str
    chapters: List[Chapter]


class EpubLoader:
    """Extract chapters from EPUB files based on their table of contents."""

    def load(self, path: str) -> ParsedBook:
        """Load the title and non-empty sections of the EPUB at *path*."""

        book = epub.read_epub(path)
        toc_entries = list(self._flatten_toc(book.toc))
        if not toc_entries:
            LOGGER.warning("EPUB has no explicit TOC, falling back to spine order.")
            toc_entries = self._spine_entries(book)

        chapters: List[Chapter] = []
        seen: set[str] = set()
        for entry in toc_entries:
            href = entry.href.split("#", 1)[0]
            if href in seen:
                continue
            seen.add(href)
            item = book.get_item_with_href(href)
            if item is None:
                LOGGER.debug("Skipping TOC entry without document: %s", entry)
                continue
            text = html_to_text(item.get_content().decode("utf-8", errors="ignore"))
            if not text:
                LOGGER.debug("Skipping empty section: %s", entry.title)
                continue
            chapters.append(Chapter(index=len(chapters), title=entry.title, text=text))
        return ParsedBook(title=self._book_title(book), chapters=chapters)

    def _flatten_toc(self, toc: Iterable) -> Iterator[TocEntry]:
        # Nested sections come as (Section, [children]) pairs.
        for node in toc:
            if isinstance(node, tuple) and len(node) == 2:
                section, children = node
                yield from self._toc_entry(section)
                yield from self._flatten_toc(children)
            elif isinstance(node, list):
                yield from self._flatten_toc(node)
            else:
                yield from self._toc_entry(node)

    def _toc_entry(self, node) -> Iterator[TocEntry]:
        href = getattr(node, "href", None)
        if href:
            yield TocEntry(title=clean_title(getattr(node, "title", None)), href=href)

    def _spine_entries(self, book: epub.EpubBook) -> List[TocEntry]:
        return [
            TocEntry(title=None, href=item.get_name())
            for item in book.get_items_of_type(ebooklib.ITEM_DOCUMENT)
        ]

    def _book_title(self, book: epub.EpubBook) -> str:
        for value, _attributes in book.get_metadata("DC", "title"):
            title = clean_title(value)
            if title:
                return title
        return DEFAULT_BOOK_TITLE


def clean_title(value) -> Optional[str]:
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    return " ".join((value or "").split()) or None


def html_to_text(html: str) -> str:
    """Strip markup from an XHTML document, keeping paragraph breaks."""

    html = re.sub(r"<(script|style|head)[^>]*>.*?</\1>", "", html, flags=re.S | re.I)
    html = re.sub(r"<br\s*/?>", "\n", html, flags=re.I)
    html = re.sub(r"</(p|div|h[1-6]|li)>", "\n\n", html, flags=re.I)
    text = re.sub(r"<[^>]+>", "", html)
    text = unescape(text).replace("\xa0", " ")
    text = text.replace("\r\n", "\n")
    text = re.sub(r"[ \t]*\n[ \t]*", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


__all__ = ["EpubLoader", "ParsedBook", "html_to_text"]
