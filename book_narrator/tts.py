"""Speech synthesis backend and per-chapter audio assembly."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

import openai
from openai import OpenAI

from . import config
from .errors import (
    ChapterSynthesisError,
    ChunkBudgetViolation,
    EmptyChapterError,
    ProviderError,
    QuotaExceededError,
    SynthesisTimeoutError,
)
from .text.chunker import (
    PREFIX_SEPARATOR,
    ChunkSplitter,
    max_input_chars,
    prefix_budget,
    prefix_overhead,
)
from .text.normalize import clean_text

LOGGER = logging.getLogger(__name__)

Synthesize = Callable[[str], bytes]

# Sent with every chunk and charged against the same input budget.
STYLE_INSTRUCTIONS = {
    "narrative": "Neutral voice. Fluid, natural narrative tone. Pleasant intonation. Natural pauses.",
    "learning": "Neutral voice. Clear, measured pace. Careful pronunciation. Natural pauses.",
}

STATUS_COMPLETE = "complete"
STATUS_CANCELLED = "cancelled"


def build_instructions(style: str = "narrative") -> str:
    try:
        return STYLE_INSTRUCTIONS[style]
    except KeyError:
        raise ValueError(
            f"Unknown style {style!r}; expected one of {sorted(STYLE_INSTRUCTIONS)}"
        ) from None


class OpenAISynthesizer:
    """Synthesize MP3 audio with the OpenAI speech endpoint.

    Instances are callables matching :data:`Synthesize`. Provider exceptions
    are translated into :class:`~book_narrator.errors.SynthesisError`
    subclasses; nothing is retried here.
    """

    def __init__(
        self,
        *,
        voice: str = "alloy",
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        client: Optional[OpenAI] = None,
        timeout: float = config.REQUEST_TIMEOUT,
    ) -> None:
        if client is None:
            key = api_key or config.OPENAI_API_KEY
            if not key:
                raise ValueError("OpenAI API key not found. Set OPENAI_API_KEY or pass api_key.")
            client = OpenAI(api_key=key, timeout=timeout, max_retries=0)
        self.client = client
        self.voice = voice
        self.model = model or config.OPENAI_TTS_MODEL

    def __call__(self, text: str) -> bytes:
        try:
            response = self.client.audio.speech.create(
                model=self.model,
                voice=self.voice,
                input=text,
                response_format="mp3",
            )
        except openai.RateLimitError as exc:
            raise QuotaExceededError(str(exc)) from exc
        except openai.APITimeoutError as exc:
            raise SynthesisTimeoutError(str(exc)) from exc
        except openai.OpenAIError as exc:
            raise ProviderError(str(exc)) from exc
        return response.content


@dataclass
class ChapterAudio:
    """Concatenated audio for one chapter."""

    index: int
    audio: bytes
    chunk_count: int
    completed_chunks: int
    status: str = STATUS_COMPLETE

    @property
    def byte_length(self) -> int:
        return len(self.audio)

    @property
    def cancelled(self) -> bool:
        return self.status == STATUS_CANCELLED


class ChapterAudioAssembler:
    """Turn one chapter's text into one audio buffer.

    The chapter is chunked to ``budget`` characters, each chunk is sent to
    ``synthesize`` strictly in order (optionally behind ``prefix``), and the
    returned buffers are concatenated. Calls are never issued concurrently
    within a chapter.
    """

    def __init__(
        self,
        synthesize: Synthesize,
        *,
        prefix: str = "",
        budget: Optional[int] = None,
        max_input: Optional[int] = None,
    ) -> None:
        self.synthesize = synthesize
        self.prefix = prefix
        overhead = prefix_overhead(prefix)
        if max_input is None:
            max_input = budget + overhead if budget is not None else max_input_chars()
        if budget is None:
            budget = prefix_budget(prefix, max_input)
        if budget + overhead > max_input:
            raise ChunkBudgetViolation(
                f"A {budget} character chunk plus a {overhead} character prefix "
                f"exceeds the {max_input} character input limit"
            )
        self.max_input = max_input
        self.budget = budget
        self.splitter = ChunkSplitter(self.budget)

    def build_input(self, chunk: str) -> str:
        text = f"{self.prefix}{PREFIX_SEPARATOR}{chunk}" if self.prefix else chunk
        if len(text) > self.max_input:
            raise ChunkBudgetViolation(
                f"Synthesis input of {len(text)} characters exceeds {self.max_input}"
            )
        return text

    def synthesize_chapter(
        self,
        chapter_text: str,
        *,
        index: int = 0,
        cancel_event: Optional[threading.Event] = None,
        completed: Sequence[bytes] = (),
    ) -> ChapterAudio:
        """Synthesize *chapter_text*, resuming after any ``completed`` chunks.

        Raises :class:`EmptyChapterError` when there is nothing to read and
        :class:`ChapterSynthesisError` when a chunk fails. A set
        ``cancel_event`` stops before the next call and returns the partial
        audio with a cancelled status.
        """

        chunks = self.splitter.split(clean_text(chapter_text))
        if not chunks:
            raise EmptyChapterError(index)
        if len(completed) > len(chunks):
            raise ValueError(
                f"{len(completed)} completed chunks given for a chapter of {len(chunks)}"
            )

        payloads = [self.build_input(chunk) for chunk in chunks]
        buffers: List[bytes] = list(completed)
        if buffers:
            LOGGER.info("Resuming chapter %d at chunk %d/%d", index, len(buffers), len(chunks))
        for sequence in range(len(buffers), len(chunks)):
            if cancel_event is not None and cancel_event.is_set():
                LOGGER.warning(
                    "Chapter %d cancelled after %d/%d chunks", index, len(buffers), len(chunks)
                )
                return ChapterAudio(
                    index=index,
                    audio=b"".join(buffers),
                    chunk_count=len(chunks),
                    completed_chunks=len(buffers),
                    status=STATUS_CANCELLED,
                )
            payload = payloads[sequence]
            LOGGER.debug(
                "Chapter %d: synthesizing chunk %d/%d (%d characters)",
                index,
                sequence + 1,
                len(chunks),
                len(payload),
            )
            try:
                buffers.append(self.synthesize(payload))
            except Exception as exc:
                LOGGER.error("Chapter %d: chunk %d failed: %s", index, sequence, exc)
                raise ChapterSynthesisError(index, sequence, buffers, exc) from exc

        audio = b"".join(buffers)
        LOGGER.info("Chapter %d: %d chunks, %d bytes", index, len(chunks), len(audio))
        return ChapterAudio(
            index=index,
            audio=audio,
            chunk_count=len(chunks),
            completed_chunks=len(chunks),
        )


def synthesize_chapter(
    chapter_text: str,
    budget: int,
    synthesize: Synthesize,
    *,
    prefix: str = "",
) -> bytes:
    """Chunk, synthesize and concatenate *chapter_text* in one call."""

    assembler = ChapterAudioAssembler(synthesize, prefix=prefix, budget=budget)
    return assembler.synthesize_chapter(chapter_text).audio


__all__ = [
    "ChapterAudio",
    "ChapterAudioAssembler",
    "OpenAISynthesizer",
    "STYLE_INSTRUCTIONS",
    "Synthesize",
    "build_instructions",
    "synthesize_chapter",
]
