"""Shared conversion logic used by the CLI.

This module keeps the whole "book in, chapter audio out" flow in one place:
loading and normalizing text, chapter detection, the cost guard, per-chapter
synthesis with caching, and writing the chapter files plus a manifest.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence
import hashlib
import json
import logging
import threading
import time

from mutagen.id3 import ID3, ID3NoHeaderError, TALB, TIT2, TPE1, TRCK

from . import config
from .errors import ChapterSynthesisError, EmptyInputError
from .ingest import Chapter
from .ingest.epub_loader import EpubLoader
from .ingest.filetype import detect_file_type
from .ingest.pdf_loader import PdfLoader
from .text.chunker import chunk_budget, max_input_chars
from .text.estimate import CostEstimate, check_cost, estimate_batch
from .text.normalize import LEVELS, NormalizationOptions, Normalizer
from .text.segmenter import ChapterSegmenter
from .tts import (
    STYLE_INSTRUCTIONS,
    ChapterAudio,
    ChapterAudioAssembler,
    OpenAISynthesizer,
    Synthesize,
    build_instructions,
)

__all__ = [
    "ConversionOptions",
    "ConversionResult",
    "AudiobookConverter",
]

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"


@dataclass
class ConversionOptions:
    """Options that control how a book is rendered to chapter audio."""

    input_path: Path
    output_dir: Path
    voice: str = "alloy"
    style: str = "narrative"
    model: Optional[str] = None
    max_input_tokens: int = config.MAX_INPUT_TOKENS
    normalize: str = "standard"  # none|light|standard|strong
    chapter_mode: str = "auto"  # auto|none
    cache_dir: Optional[Path] = None
    resume: bool = False
    jobs: int = 1
    max_cost_usd: Optional[float] = config.MAX_OPERATION_COST_USD
    estimate_only: bool = False
    keep_partial: bool = False
    metadata: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.chapter_mode not in {"auto", "none"}:
            raise ValueError(f"Unsupported chapter mode: {self.chapter_mode}")
        if self.normalize not in LEVELS:
            raise ValueError(f"Unsupported normalization level: {self.normalize}")
        if self.style not in STYLE_INSTRUCTIONS:
            raise ValueError(f"Unsupported style: {self.style}")
        if self.max_input_tokens <= config.SAFETY_TOKENS:
            raise ValueError(
                f"max_input_tokens must be greater than the {config.SAFETY_TOKENS} token safety margin"
            )
        if self.jobs < 1:
            raise ValueError("jobs must be at least 1")
        if self.max_cost_usd is not None and self.max_cost_usd < 0:
            raise ValueError("max_cost_usd must not be negative")


@dataclass
class ChapterOutput:
    """Where a chapter's audio ended up."""

    chapter: Chapter
    path: Optional[Path]
    byte_length: int
    cached: bool = False


@dataclass
class ConversionResult:
    """Outcome returned after a conversion run."""

    output_dir: Path
    title: str
    chapters: List[Chapter]
    outputs: List[ChapterOutput]
    estimate: CostEstimate
    generated_chapters: int
    reused_chapters: int
    elapsed_seconds: float
    cancelled: bool = False


class AudiobookConverter:
    """High level orchestrator for the narration pipeline."""

    def __init__(self, default_cache_dir: Optional[Path] = None) -> None:
        self.default_cache_dir = default_cache_dir or config.CACHE_DIR
        self.cancel_event = threading.Event()

    def cancel(self) -> None:
        """Stop launching synthesis calls; running chapters return partial audio."""

        self.cancel_event.set()

    # Public API -----------------------------------------------------------------
    def convert(
        self,
        options: ConversionOptions,
        synthesize: Optional[Synthesize] = None,
    ) -> ConversionResult:
        start_time = time.perf_counter()
        logger.debug("Starting conversion with options: %s", options)

        title, chapters = self.load_chapters(options)
        logger.info("Prepared %d chapters", len(chapters))

        estimate = estimate_batch(chapter.text for chapter in chapters)
        logger.info(
            "Estimated %d words, %.1f minutes, $%.4f",
            estimate.word_count,
            estimate.minutes,
            estimate.cost_usd,
        )
        if options.estimate_only:
            return ConversionResult(
                output_dir=options.output_dir,
                title=title,
                chapters=chapters,
                outputs=[],
                estimate=estimate,
                generated_chapters=0,
                reused_chapters=0,
                elapsed_seconds=time.perf_counter() - start_time,
            )
        check_cost(estimate, options.max_cost_usd)

        if synthesize is None:
            synthesize = OpenAISynthesizer(voice=options.voice, model=options.model)
        prefix = build_instructions(options.style)
        assembler = ChapterAudioAssembler(
            synthesize,
            prefix=prefix,
            budget=chunk_budget(prefix, max_input_tokens=options.max_input_tokens),
            max_input=max_input_chars(max_input_tokens=options.max_input_tokens),
        )

        cache_dir = options.cache_dir or self.default_cache_dir
        cache_dir.mkdir(parents=True, exist_ok=True)
        options.output_dir.mkdir(parents=True, exist_ok=True)
        logger.debug("Using cache directory: %s", cache_dir)

        def render(chapter: Chapter) -> Optional[ChapterOutput]:
            return self._render_chapter(chapter, title, len(chapters), assembler, cache_dir, options)

        if options.jobs > 1:
            with ThreadPoolExecutor(max_workers=options.jobs) as pool:
                rendered = list(pool.map(render, chapters))
        else:
            rendered = []
            for chapter in chapters:
                output = render(chapter)
                rendered.append(output)
                if output is None:
                    break

        outputs = [output for output in rendered if output is not None]
        cancelled = len(outputs) < len(chapters)
        generated = sum(1 for output in outputs if not output.cached)
        reused = len(outputs) - generated

        self._write_manifest(options, title, chapters, outputs, estimate, cancelled)
        elapsed = time.perf_counter() - start_time
        logger.info("Finished conversion in %.2fs", elapsed)

        return ConversionResult(
            output_dir=options.output_dir,
            title=title,
            chapters=chapters,
            outputs=outputs,
            estimate=estimate,
            generated_chapters=generated,
            reused_chapters=reused,
            elapsed_seconds=elapsed,
            cancelled=cancelled,
        )

    # Input handling --------------------------------------------------------------
    def load_chapters(self, options: ConversionOptions) -> tuple[str, List[Chapter]]:
        """Return the book title and its chapters, ready for synthesis."""

        input_path = options.input_path
        if not input_path.exists():
            raise FileNotFoundError(f"Input file does not exist: {input_path}")

        file_type = detect_file_type(input_path.name)
        if file_type is None:
            raise ValueError(f"Unsupported file type (expected PDF, EPUB or text): {input_path}")

        title = options.metadata.get("title") or input_path.stem
        normalizer = Normalizer(NormalizationOptions.for_level(options.normalize))

        if file_type == "epub":
            book = EpubLoader().load(str(input_path))
            title = options.metadata.get("title") or book.title
            sections = [
                Chapter(index=chapter.index, title=chapter.title, text=normalizer.normalize(chapter.text))
                for chapter in book.chapters
            ]
            if options.chapter_mode == "none":
                text = "\n\n".join(section.text for section in sections)
                chapters = self._single_chapter(text, title)
            else:
                chapters = self._drop_empty(sections)
        else:
            if file_type == "pdf":
                raw_text = PdfLoader().load_text(str(input_path))
            else:
                raw_text = self._load_text(input_path)
            logger.debug("Loaded %d characters from %s", len(raw_text), input_path)
            text = normalizer.normalize(raw_text)
            logger.debug("Normalized text length: %d", len(text))
            if options.chapter_mode == "none":
                chapters = self._single_chapter(text, title)
            else:
                chapters = self._drop_empty(ChapterSegmenter().segment(text))

        if not chapters:
            raise EmptyInputError(f"No text found in {input_path}")
        return title, chapters

    def _load_text(self, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            logger.warning("Failed to decode %s as UTF-8; attempting latin-1", path)
            return path.read_text(encoding="latin-1")

    def _drop_empty(self, chapters: List[Chapter]) -> List[Chapter]:
        """Skip chapters with no body text, such as a trailing heading."""

        kept = [chapter for chapter in chapters if chapter.text.strip()]
        for chapter in chapters:
            if not chapter.text.strip():
                logger.warning("Skipping empty chapter %d (%s)", chapter.index, chapter.title)
        return [Chapter(index=i, title=chapter.title, text=chapter.text) for i, chapter in enumerate(kept)]

    def _single_chapter(self, text: str, title: str) -> List[Chapter]:
        if not text.strip():
            return []
        return [Chapter(index=0, title=title, text=text)]

    # Audio synthesis -------------------------------------------------------------
    def _chapter_cache_key(self, chapter: Chapter, options: ConversionOptions) -> str:
        fingerprint = "|".join(
            [
                hashlib.sha256(chapter.text.encode("utf-8")).hexdigest(),
                options.voice,
                options.style,
                options.model or config.OPENAI_TTS_MODEL,
                str(options.max_input_tokens),
            ]
        )
        return hashlib.sha256(fingerprint.encode("utf-8")).hexdigest()

    def _render_chapter(
        self,
        chapter: Chapter,
        title: str,
        chapter_count: int,
        assembler: ChapterAudioAssembler,
        cache_dir: Path,
        options: ConversionOptions,
    ) -> Optional[ChapterOutput]:
        output_path = options.output_dir / chapter_filename(chapter)
        cache_path = cache_dir / f"{self._chapter_cache_key(chapter, options)}.mp3"
        if options.resume and cache_path.exists():
            audio = cache_path.read_bytes()
            output_path.write_bytes(audio)
            self._tag_chapter(output_path, chapter, title, chapter_count, options)
            logger.debug("Reused cached chapter %d", chapter.index)
            return ChapterOutput(chapter=chapter, path=output_path, byte_length=len(audio), cached=True)

        if self.cancel_event.is_set():
            return None
        try:
            result: ChapterAudio = assembler.synthesize_chapter(
                chapter.text, index=chapter.index, cancel_event=self.cancel_event
            )
        except ChapterSynthesisError as exc:
            logger.error(
                "Chapter %d failed at chunk %d after %d completed chunks",
                exc.chapter_index,
                exc.chunk_index,
                len(exc.completed),
            )
            if options.keep_partial and exc.completed:
                partial_path = output_path.with_suffix(".partial.mp3")
                partial_path.write_bytes(exc.partial_audio)
                logger.info("Kept partial audio for chapter %d in %s", chapter.index, partial_path)
            raise

        if result.cancelled:
            if options.keep_partial and result.audio:
                output_path.with_suffix(".partial.mp3").write_bytes(result.audio)
            return None

        cache_path.write_bytes(result.audio)
        output_path.write_bytes(result.audio)
        self._tag_chapter(output_path, chapter, title, chapter_count, options)
        logger.debug("Generated chapter %d", chapter.index)
        return ChapterOutput(chapter=chapter, path=output_path, byte_length=result.byte_length)

    def _tag_chapter(
        self,
        path: Path,
        chapter: Chapter,
        title: str,
        chapter_count: int,
        options: ConversionOptions,
    ) -> None:
        try:
            tags = ID3(path)
        except ID3NoHeaderError:
            tags = ID3()
        tags.add(TIT2(encoding=3, text=chapter_title(chapter)))
        tags.add(TALB(encoding=3, text=title))
        tags.add(TRCK(encoding=3, text=f"{chapter.index + 1}/{chapter_count}"))
        if options.metadata.get("artist"):
            tags.add(TPE1(encoding=3, text=options.metadata["artist"]))
        tags.save(path)

    def _write_manifest(
        self,
        options: ConversionOptions,
        title: str,
        chapters: Sequence[Chapter],
        outputs: Sequence[ChapterOutput],
        estimate: CostEstimate,
        cancelled: bool,
    ) -> Path:
        manifest = {
            "title": title,
            "input": str(options.input_path),
            "voice": options.voice,
            "style": options.style,
            "chapter_count": len(chapters),
            "cancelled": cancelled,
            "estimate": estimate.as_dict(),
            "metadata": options.metadata,
            "chapters": [
                {
                    "index": output.chapter.index,
                    "title": output.chapter.title,
                    "file": output.path.name if output.path else None,
                    "byte_length": output.byte_length,
                    "cached": output.cached,
                }
                for output in outputs
            ],
        }
        manifest_path = options.output_dir / MANIFEST_NAME
        manifest_path.write_text(json.dumps(manifest, indent=2, ensure_ascii=False), encoding="utf-8")
        logger.info("Wrote %d chapters to %s", len(outputs), options.output_dir)
        return manifest_path


def chapter_filename(chapter: Chapter) -> str:
    return f"chapter-{chapter.index:03d}.mp3"


def chapter_title(chapter: Chapter) -> str:
    return chapter.title or f"Chapter {chapter.index + 1}"
