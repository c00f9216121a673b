"""Text processing: normalization, chapter detection, chunking and estimates."""

from __future__ import annotations

from .chunker import ChunkSplitter, TextChunk, chunk_budget, split_text
from .estimate import CostEstimate, estimate_batch, estimate_text
from .segmenter import ChapterSegmenter, segment

__all__ = [
    "ChapterSegmenter",
    "ChunkSplitter",
    "CostEstimate",
    "TextChunk",
    "chunk_budget",
    "estimate_batch",
    "estimate_text",
    "segment",
    "split_text",
]
