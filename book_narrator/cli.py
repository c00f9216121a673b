"""Command line interface for Book Narrator."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Iterable, List, Optional

from . import __version__, config
from .converter import AudiobookConverter, ConversionOptions
from .text.normalize import LEVELS
from .tts import STYLE_INSTRUCTIONS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="book-narrator",
        description=(
            "Split a PDF, EPUB or text book into chapters and narrate each chapter "
            "to an MP3 file."
        ),
    )
    parser.add_argument("--in", dest="input_path", type=Path, required=True, help="Input EPUB/PDF/text file")
    parser.add_argument("--out", dest="output_dir", type=Path, required=True, help="Directory for chapter audio")
    parser.add_argument("--voice", default="alloy", help="Voice identifier of the speech provider")
    parser.add_argument(
        "--style",
        choices=sorted(STYLE_INSTRUCTIONS),
        default="narrative",
        help="Reading style instruction sent with every chunk",
    )
    parser.add_argument("--model", help=f"Speech model (default: {config.OPENAI_TTS_MODEL})")
    parser.add_argument(
        "--max-tokens",
        type=int,
        default=config.MAX_INPUT_TOKENS,
        help="Input token limit of the speech model",
    )
    parser.add_argument(
        "--chapters",
        choices=["auto", "none"],
        default="auto",
        help="Chapter mode: detect chapters, or narrate the book as one chapter",
    )
    parser.add_argument(
        "--normalize",
        choices=list(LEVELS),
        default="standard",
        help="Text normalization strength",
    )
    parser.add_argument("--cache-dir", type=Path, help="Cache directory for per-chapter renders")
    parser.add_argument("--resume", action="store_true", help="Reuse cached chapters when available")
    parser.add_argument("--jobs", type=int, default=1, help="Chapters to synthesize in parallel")
    cost = parser.add_mutually_exclusive_group()
    cost.add_argument(
        "--max-cost",
        type=float,
        default=config.MAX_OPERATION_COST_USD,
        help="Refuse to run when the estimated cost in USD is above this",
    )
    cost.add_argument(
        "--no-cost-limit",
        dest="max_cost",
        action="store_const",
        const=None,
        help="Disable the cost guard",
    )
    parser.add_argument("--estimate", action="store_true", help="Print the cost estimate and exit")
    parser.add_argument(
        "--keep-partial",
        action="store_true",
        help="Write the audio of partially synthesized chapters",
    )
    parser.add_argument(
        "--meta",
        dest="metadata",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Extra metadata such as title or artist (repeatable)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only print warnings and errors")
    parser.add_argument("--version", action="version", version=f"book-narrator {__version__}")
    return parser


def parse_metadata(pairs: Iterable[str]) -> dict:
    metadata = {}
    for pair in pairs:
        if "=" not in pair:
            raise ValueError(f"Invalid metadata entry (expected key=value): {pair}")
        key, value = pair.split("=", 1)
        metadata[key.strip()] = value.strip()
    return metadata


def configure_logging(verbose: bool, quiet: bool) -> None:
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def create_options(namespace: argparse.Namespace) -> ConversionOptions:
    return ConversionOptions(
        input_path=namespace.input_path,
        output_dir=namespace.output_dir,
        voice=namespace.voice,
        style=namespace.style,
        model=namespace.model,
        max_input_tokens=namespace.max_tokens,
        normalize=namespace.normalize,
        chapter_mode=namespace.chapters,
        cache_dir=namespace.cache_dir,
        resume=namespace.resume,
        jobs=namespace.jobs,
        max_cost_usd=namespace.max_cost,
        estimate_only=namespace.estimate,
        keep_partial=namespace.keep_partial,
        metadata=parse_metadata(namespace.metadata),
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose, args.quiet)
    converter = AudiobookConverter()
    try:
        options = create_options(args)
        result = converter.convert(options)
    except KeyboardInterrupt:
        logging.getLogger(__name__).warning("Interrupted")
        return 130
    except Exception as exc:  # pragma: no cover - CLI safety net
        logging.getLogger(__name__).error(str(exc))
        return 1

    estimate = result.estimate
    print(
        f"{len(result.chapters)} chapters, {estimate.word_count} words, "
        f"~{estimate.minutes:.1f} min, ~${estimate.cost_usd:.4f}"
    )
    if args.estimate:
        return 0
    print(f"Wrote {result.generated_chapters} new chapters to {result.output_dir}")
    if result.reused_chapters:
        print(f"Reused {result.reused_chapters} chapters from cache")
    if result.cancelled:
        print("Conversion was cancelled before all chapters were written")
    print(f"Elapsed: {result.elapsed_seconds:.2f}s")
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
