from __future__ import annotations

import json
from pathlib import Path
from typing import List

import pytest
from mutagen.id3 import ID3

from book_narrator.converter import AudiobookConverter, ConversionOptions
from book_narrator.errors import ChapterSynthesisError, CostLimitExceeded, EmptyInputError
from book_narrator.ingest import Chapter
from book_narrator.tts import STYLE_INSTRUCTIONS

BOOK = (
    "Chapter 1\nIt was a dark and stormy night.\n\n"
    "Chapter 2\nThe storm passed by morning.\n\n"
    "Chapter 3\nEveryone went home."
)


class FakeSynth:
    def __init__(self, fail_on: int | None = None) -> None:
        self.calls: List[str] = []
        self.fail_on = fail_on

    def __call__(self, text: str) -> bytes:
        position = len(self.calls)
        self.calls.append(text)
        if position == self.fail_on:
            raise RuntimeError("provider down")
        return f"audio:{position}".encode()


def _make_options(tmp_path: Path, text: str = BOOK, **overrides) -> ConversionOptions:
    input_path = tmp_path / "storm.txt"
    input_path.write_text(text, encoding="utf-8")
    settings = dict(
        input_path=input_path,
        output_dir=tmp_path / "out",
        cache_dir=tmp_path / "cache",
    )
    settings.update(overrides)
    return ConversionOptions(**settings)


def test_chapter_cache_key_changes_when_text_changes(tmp_path):
    options = _make_options(tmp_path)
    converter = AudiobookConverter()

    chapter_a = Chapter(index=0, title="Test", text="Hello world")
    chapter_b = Chapter(index=0, title="Test", text="Hxllo worle")

    key_a = converter._chapter_cache_key(chapter_a, options)
    key_b = converter._chapter_cache_key(chapter_b, options)

    assert key_a != key_b


def test_chapter_cache_key_stable_for_same_text(tmp_path):
    options = _make_options(tmp_path)
    converter = AudiobookConverter()

    chapter = Chapter(index=1, title="Another", text="Identical text")

    key_first = converter._chapter_cache_key(chapter, options)
    key_second = converter._chapter_cache_key(chapter, options)

    assert key_first == key_second


def test_chapter_cache_key_depends_on_voice(tmp_path):
    converter = AudiobookConverter()
    chapter = Chapter(index=0, title=None, text="Same text")

    key_alloy = converter._chapter_cache_key(chapter, _make_options(tmp_path, voice="alloy"))
    key_nova = converter._chapter_cache_key(chapter, _make_options(tmp_path, voice="nova"))

    assert key_alloy != key_nova


def test_convert_writes_one_tagged_file_per_chapter(tmp_path):
    options = _make_options(tmp_path)
    synth = FakeSynth()

    result = AudiobookConverter().convert(options, synthesize=synth)

    assert [chapter.title for chapter in result.chapters] == ["Chapter 1", "Chapter 2", "Chapter 3"]
    assert result.generated_chapters == 3
    assert result.reused_chapters == 0
    assert not result.cancelled
    assert len(synth.calls) == 3
    prefix = STYLE_INSTRUCTIONS["narrative"]
    assert synth.calls[0] == f"{prefix}\n\nIt was a dark and stormy night."

    first = options.output_dir / "chapter-000.mp3"
    assert first.read_bytes().endswith(b"audio:0")
    tags = ID3(first)
    assert tags["TIT2"].text == ["Chapter 1"]
    assert tags["TALB"].text == ["storm"]
    assert tags["TRCK"].text == ["1/3"]

    manifest = json.loads((options.output_dir / "manifest.json").read_text(encoding="utf-8"))
    assert manifest["chapter_count"] == 3
    assert [entry["file"] for entry in manifest["chapters"]] == [
        "chapter-000.mp3",
        "chapter-001.mp3",
        "chapter-002.mp3",
    ]
    assert manifest["chapters"][0]["byte_length"] == len(b"audio:0")


def test_resume_reuses_cached_chapters(tmp_path):
    options = _make_options(tmp_path)
    AudiobookConverter().convert(options, synthesize=FakeSynth())

    resumed = _make_options(tmp_path, resume=True)
    synth = FakeSynth(fail_on=0)
    result = AudiobookConverter().convert(resumed, synthesize=synth)

    assert synth.calls == []
    assert result.reused_chapters == 3
    assert result.generated_chapters == 0
    assert all(output.cached for output in result.outputs)


def test_parallel_chapters_keep_their_order(tmp_path):
    options = _make_options(tmp_path, jobs=3)

    result = AudiobookConverter().convert(options, synthesize=FakeSynth())

    assert [output.chapter.index for output in result.outputs] == [0, 1, 2]
    assert all(output.path.exists() for output in result.outputs)


def test_cost_guard_blocks_expensive_runs(tmp_path):
    options = _make_options(tmp_path, max_cost_usd=0.0)
    synth = FakeSynth()

    with pytest.raises(CostLimitExceeded):
        AudiobookConverter().convert(options, synthesize=synth)

    assert synth.calls == []
    assert not options.output_dir.exists()


def test_estimate_only_does_not_synthesize(tmp_path):
    options = _make_options(tmp_path, estimate_only=True)
    synth = FakeSynth()

    result = AudiobookConverter().convert(options, synthesize=synth)

    assert synth.calls == []
    assert result.outputs == []
    assert result.estimate.word_count == 15


def test_empty_book_is_an_ingestion_failure(tmp_path):
    options = _make_options(tmp_path, text="  \n\n ")

    with pytest.raises(EmptyInputError):
        AudiobookConverter().convert(options, synthesize=FakeSynth())


def test_trailing_heading_without_body_is_skipped(tmp_path):
    options = _make_options(tmp_path, text="Chapter 1\nIt was a dark night.\n\nChapter 2\n")
    synth = FakeSynth()

    result = AudiobookConverter().convert(options, synthesize=synth)

    assert [(chapter.index, chapter.title) for chapter in result.chapters] == [(0, "Chapter 1")]
    assert result.generated_chapters == 1
    assert len(synth.calls) == 1
    manifest = json.loads((options.output_dir / "manifest.json").read_text(encoding="utf-8"))
    assert manifest["chapter_count"] == 1


def test_missing_and_unsupported_inputs_are_rejected(tmp_path):
    missing = ConversionOptions(input_path=tmp_path / "nope.txt", output_dir=tmp_path / "out")
    with pytest.raises(FileNotFoundError):
        AudiobookConverter().convert(missing, synthesize=FakeSynth())

    unsupported_path = tmp_path / "book.docx"
    unsupported_path.write_bytes(b"PK")
    unsupported = ConversionOptions(input_path=unsupported_path, output_dir=tmp_path / "out")
    with pytest.raises(ValueError):
        AudiobookConverter().convert(unsupported, synthesize=FakeSynth())


def test_failed_chapter_keeps_partial_audio(tmp_path):
    text = "\n\n".join(letter * 100 for letter in "abc")
    options = _make_options(
        tmp_path,
        text=text,
        chapter_mode="none",
        max_input_tokens=450,
        keep_partial=True,
    )

    with pytest.raises(ChapterSynthesisError) as excinfo:
        AudiobookConverter().convert(options, synthesize=FakeSynth(fail_on=1))

    assert excinfo.value.chunk_index == 1
    partial = options.output_dir / "chapter-000.partial.mp3"
    assert partial.read_bytes() == b"audio:0"


def test_cancelled_conversion_stops_launching_chapters(tmp_path):
    options = _make_options(tmp_path)
    converter = AudiobookConverter()
    converter.cancel()
    synth = FakeSynth()

    result = converter.convert(options, synthesize=synth)

    assert result.cancelled
    assert result.outputs == []
    assert synth.calls == []
    manifest = json.loads((options.output_dir / "manifest.json").read_text(encoding="utf-8"))
    assert manifest["cancelled"] is True


@pytest.mark.parametrize(
    "overrides",
    [
        {"chapter_mode": "from-file"},
        {"normalize": "extreme"},
        {"style": "shouting"},
        {"jobs": 0},
        {"max_input_tokens": 100},
        {"max_cost_usd": -1.0},
    ],
)
def test_invalid_options_are_rejected(tmp_path, overrides):
    with pytest.raises(ValueError):
        _make_options(tmp_path, **overrides)
