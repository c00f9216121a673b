"""Content ingestion helpers for Book Narrator."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Chapter:
    """Representation of a logical chapter extracted from a book."""

    index: int
    title: Optional[str]
    text: str


__all__ = ["Chapter"]
