"""Exceptions raised by the narration pipeline."""

from __future__ import annotations

from typing import List, Optional, Sequence

__all__ = [
    "NarratorError",
    "EmptyInputError",
    "EmptyChapterError",
    "ChunkBudgetViolation",
    "SynthesisError",
    "QuotaExceededError",
    "ProviderError",
    "SynthesisTimeoutError",
    "ChapterSynthesisError",
    "CostLimitExceeded",
]


class NarratorError(Exception):
    """Base class for all pipeline errors."""


class EmptyInputError(NarratorError):
    """The source contained no text to segment."""


class EmptyChapterError(NarratorError):
    """A chapter produced no chunks to synthesize."""

    def __init__(self, chapter_index: int) -> None:
        super().__init__(f"Empty chapter (index={chapter_index})")
        self.chapter_index = chapter_index


class ChunkBudgetViolation(NarratorError):
    """A chunk or synthesis input exceeded its budget.

    Chunking guarantees this cannot happen, so an occurrence is a bug rather
    than a recoverable condition.
    """


class SynthesisError(NarratorError):
    """The speech provider failed to synthesize a piece of text."""


class QuotaExceededError(SynthesisError):
    """The provider rejected the request for quota or rate reasons."""


class ProviderError(SynthesisError):
    """The provider returned an error."""


class SynthesisTimeoutError(SynthesisError):
    """The provider did not answer in time."""


class ChapterSynthesisError(NarratorError):
    """Synthesis of one chunk failed and the rest of the chapter was skipped.

    ``completed`` holds the audio of every chunk before ``chunk_index`` so a
    caller can keep the partial artifact or resume from the failing chunk.
    """

    def __init__(
        self,
        chapter_index: int,
        chunk_index: int,
        completed: Sequence[bytes],
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            f"Synthesis failed for chapter {chapter_index} at chunk {chunk_index}"
            f" ({len(completed)} chunks completed): {cause}"
        )
        self.chapter_index = chapter_index
        self.chunk_index = chunk_index
        self.completed: List[bytes] = list(completed)
        self.cause = cause

    @property
    def partial_audio(self) -> bytes:
        return b"".join(self.completed)


class CostLimitExceeded(NarratorError):
    """Estimated synthesis cost is above the configured limit."""

    def __init__(self, cost_usd: float, limit_usd: float) -> None:
        super().__init__(
            f"Estimated cost ${cost_usd:.4f} exceeds the limit of ${limit_usd:.2f}"
        )
        self.cost_usd = cost_usd
        self.limit_usd = limit_usd
