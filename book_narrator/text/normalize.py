"""Text normalization helpers."""

from __future__ import annotations

from dataclasses import dataclass, fields
import re
from typing import Callable, List, Tuple

LIGATURE_TABLE = str.maketrans({"ﬀ": "ff", "ﬁ": "fi", "ﬂ": "fl", "ﬃ": "ffi", "ﬄ": "ffl"})
QUOTE_TABLE = str.maketrans({"“": '"', "”": '"', "‘": "'", "’": "'", "–": "-"})

LEVELS = ("none", "light", "standard", "strong")

_HYPHEN_BREAK_RE = re.compile(r"(\w+)-\n(\w+)")
_PAGE_NUMBER_LINE_RE = re.compile(r"^[ \t]*\d+[ \t]*$\n?", re.MULTILINE)
_BLANK_RUN_RE = re.compile(r"\n{3,}")


@dataclass
class NormalizationOptions:
    """Which clean-up passes to run over extracted text."""

    fix_hyphenation: bool = True
    normalize_quotes: bool = True
    replace_ligatures: bool = True
    strip_page_numbers: bool = True
    collapse_whitespace: bool = True

    @classmethod
    def for_level(cls, level: str) -> "NormalizationOptions":
        """Options for one of the named strength levels in ``LEVELS``."""

        if level not in LEVELS:
            raise ValueError(f"Unsupported normalization level: {level}")
        if level == "none":
            return cls(**{flag.name: False for flag in fields(cls)})
        disabled = {
            "light": ("fix_hyphenation", "strip_page_numbers"),
            "standard": ("strip_page_numbers",),
            "strong": (),
        }[level]
        return cls(**{name: False for name in disabled})


def join_hyphenated(text: str) -> str:
    return _HYPHEN_BREAK_RE.sub(r"\1\2", text)


def straighten_quotes(text: str) -> str:
    return text.translate(QUOTE_TABLE)


def expand_ligatures(text: str) -> str:
    return text.translate(LIGATURE_TABLE)


def drop_page_numbers(text: str) -> str:
    return _PAGE_NUMBER_LINE_RE.sub("", text)


def collapse_whitespace(text: str) -> str:
    text = re.sub(r"[\t ]+", " ", text)
    text = re.sub(r" ?\n ?", "\n", text)
    return _BLANK_RUN_RE.sub("\n\n", text)


_PASSES: Tuple[Tuple[str, Callable[[str], str]], ...] = (
    ("fix_hyphenation", join_hyphenated),
    ("normalize_quotes", straighten_quotes),
    ("replace_ligatures", expand_ligatures),
    ("strip_page_numbers", drop_page_numbers),
    ("collapse_whitespace", collapse_whitespace),
)


class Normalizer:
    """Run the enabled passes over book text, in a fixed order.

    Line endings are always unified. Blank lines between paragraphs survive
    every level, since chapter detection and chunking split on them.
    """

    def __init__(self, options: NormalizationOptions | None = None) -> None:
        self.options = options or NormalizationOptions()
        self.passes: List[Callable[[str], str]] = [
            step for flag, step in _PASSES if getattr(self.options, flag)
        ]

    def normalize(self, text: str) -> str:
        text = normalize_line_endings(text)
        for step in self.passes:
            text = step(text)
        return text.strip()


def normalize_line_endings(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def clean_text(text: str) -> str:
    """Unify line endings, collapse runs of blank lines and trim."""

    return _BLANK_RUN_RE.sub("\n\n", normalize_line_endings(text or "")).strip()


__all__ = ["LEVELS", "Normalizer", "NormalizationOptions", "clean_text", "normalize_line_endings"]
