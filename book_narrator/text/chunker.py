"""Split chapter text into chunks that fit the speech endpoint's input limit.

Sizes are measured in characters, derived from the provider's token limit with
a fixed characters-per-token ratio (see :mod:`book_narrator.config`).

Splitting is a chain of tiers, tried in order:

1. :func:`fit_whole` - the whole text fits.
2. :func:`pack_paragraphs` - greedy packing of blank-line separated paragraphs.
3. :func:`pack_sentences` - greedy packing of the sentences of one oversized
   paragraph.
4. :func:`hard_split` - fixed-width slices of one oversized sentence.

A tier returns ``None`` when it cannot handle its input at all, and passes any
single unit that is too large on to the tiers below it through ``overflow``.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re
from typing import Callable, List, Optional, Sequence

from .. import config
from ..errors import ChunkBudgetViolation
from .normalize import clean_text

logger = logging.getLogger(__name__)

PARAGRAPH_SEPARATOR = "\n\n"
SENTENCE_SEPARATOR = " "
PREFIX_SEPARATOR = "\n\n"

PARAGRAPH_SPLIT_RE = re.compile(r"\n{2,}")
# Sentence end (optionally closed by a quote or bracket), whitespace, then an
# uppercase letter, an opening quote or inverted punctuation.
SENTENCE_SPLIT_RE = re.compile(
    r"(?:(?<=[.!?…])|(?<=[.!?…][\"'”’»)]))\s+"
    r"(?=[A-ZÁÉÍÓÚÜÑÀÈÌÒÙÂÊÎÔÛÇÄÖ\"'“‘«¿¡(])"
)

Overflow = Callable[[str], List[str]]
Tier = Callable[[str, int, Overflow], Optional[List[str]]]


@dataclass(frozen=True)
class TextChunk:
    sequence: int
    text: str


def chunk_budget(
    prefix: str = "",
    *,
    max_input_tokens: int = config.MAX_INPUT_TOKENS,
    safety_tokens: int = config.SAFETY_TOKENS,
    chars_per_token: int = config.CHARS_PER_TOKEN,
) -> int:
    """Characters available for chunk text once *prefix* is accounted for.

    The instruction prefix and its separator are sent in the same request as
    the chunk, so they are charged against the same ceiling.
    """

    ceiling = max_input_chars(
        max_input_tokens=max_input_tokens,
        safety_tokens=safety_tokens,
        chars_per_token=chars_per_token,
    )
    return prefix_budget(prefix, ceiling)


def prefix_budget(prefix: str, ceiling: int) -> int:
    """Room left under a *ceiling* of characters once *prefix* is sent too."""

    budget = ceiling - prefix_overhead(prefix)
    if budget <= 0:
        raise ValueError(
            f"Instruction prefix of {len(prefix)} characters leaves no room under "
            f"the {ceiling} character input ceiling"
        )
    return budget


def prefix_overhead(prefix: str) -> int:
    """Characters a non-empty *prefix* adds to every synthesis input."""

    return len(prefix) + len(PREFIX_SEPARATOR) if prefix else 0


def max_input_chars(
    *,
    max_input_tokens: int = config.MAX_INPUT_TOKENS,
    safety_tokens: int = config.SAFETY_TOKENS,
    chars_per_token: int = config.CHARS_PER_TOKEN,
) -> int:
    """Largest synthesis input, in characters, that stays under the token limit."""

    return (max_input_tokens - safety_tokens) * chars_per_token


# Tiers -----------------------------------------------------------------------
def fit_whole(text: str, budget: int, overflow: Overflow) -> Optional[List[str]]:
    if len(text) <= budget:
        return [text]
    return None


def pack_paragraphs(text: str, budget: int, overflow: Overflow) -> Optional[List[str]]:
    paragraphs = [p.strip() for p in PARAGRAPH_SPLIT_RE.split(text) if p.strip()]
    return _pack(paragraphs, budget, PARAGRAPH_SEPARATOR, overflow)


def pack_sentences(text: str, budget: int, overflow: Overflow) -> Optional[List[str]]:
    sentences = split_sentences(text)
    if len(sentences) <= 1:
        return None
    return _pack(sentences, budget, SENTENCE_SEPARATOR, overflow)


def hard_split(text: str, budget: int, overflow: Overflow) -> Optional[List[str]]:
    slices = (text[start : start + budget].strip() for start in range(0, len(text), budget))
    return [piece for piece in slices if piece]


TIERS: Sequence[Tier] = (fit_whole, pack_paragraphs, pack_sentences, hard_split)


def split_sentences(text: str) -> List[str]:
    collapsed = re.sub(r"\s+", " ", text).strip()
    return [s.strip() for s in SENTENCE_SPLIT_RE.split(collapsed) if s.strip()]


def _pack(units: Sequence[str], budget: int, separator: str, overflow: Overflow) -> List[str]:
    """Greedily join *units* while the running chunk stays within *budget*."""

    chunks: List[str] = []
    current = ""
    for unit in units:
        needed = len(current) + len(separator) + len(unit) if current else len(unit)
        if needed <= budget:
            current = f"{current}{separator}{unit}" if current else unit
            continue
        if current:
            chunks.append(current)
            current = ""
        if len(unit) > budget:
            chunks.extend(overflow(unit))
        else:
            current = unit
    if current:
        chunks.append(current)
    return chunks


def _run_tiers(text: str, budget: int, tiers: Sequence[Tier]) -> List[str]:
    for position, tier in enumerate(tiers):
        lower = tiers[position + 1 :]
        chunks = tier(text, budget, lambda unit, lower=lower: _run_tiers(unit, budget, lower))
        if chunks is not None:
            return chunks
    raise ChunkBudgetViolation(f"No splitting strategy could handle {len(text)} characters")


class ChunkSplitter:
    """Split text into chunks of at most ``budget`` characters."""

    def __init__(self, budget: int, tiers: Sequence[Tier] = TIERS) -> None:
        if budget <= 0:
            raise ValueError("budget must be a positive number of characters")
        self.budget = budget
        self.tiers = tuple(tiers)

    def split(self, text: str) -> List[str]:
        cleaned = clean_text(text)
        if not cleaned:
            return []
        chunks = [chunk.strip() for chunk in _run_tiers(cleaned, self.budget, self.tiers)]
        chunks = [chunk for chunk in chunks if chunk]
        oversized = [len(chunk) for chunk in chunks if len(chunk) > self.budget]
        if oversized:
            raise ChunkBudgetViolation(
                f"Chunks of {oversized} characters exceed the budget of {self.budget}"
            )
        logger.debug(
            "Split %d characters into %d chunks (budget %d)",
            len(cleaned),
            len(chunks),
            self.budget,
        )
        return chunks

    def chunks(self, text: str) -> List[TextChunk]:
        return [TextChunk(sequence=i, text=chunk) for i, chunk in enumerate(self.split(text))]


def split_text(text: str, budget: int) -> List[str]:
    return ChunkSplitter(budget).split(text)


__all__ = [
    "ChunkSplitter",
    "TIERS",
    "TextChunk",
    "chunk_budget",
    "fit_whole",
    "hard_split",
    "max_input_chars",
    "pack_paragraphs",
    "pack_sentences",
    "prefix_budget",
    "prefix_overhead",
    "split_sentences",
    "split_text",
]
