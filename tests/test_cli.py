from __future__ import annotations

from pathlib import Path

import pytest

from book_narrator import cli


def test_parse_metadata_splits_on_first_equals():
    assert cli.parse_metadata(["title=A = B", " artist = Someone "]) == {
        "title": "A = B",
        "artist": "Someone",
    }


def test_parse_metadata_rejects_entries_without_equals():
    with pytest.raises(ValueError):
        cli.parse_metadata(["title"])


def test_create_options_maps_arguments(tmp_path):
    args = cli.build_parser().parse_args(
        [
            "--in",
            str(tmp_path / "book.pdf"),
            "--out",
            str(tmp_path / "out"),
            "--voice",
            "nova",
            "--style",
            "learning",
            "--max-tokens",
            "1800",
            "--jobs",
            "2",
            "--no-cost-limit",
            "--meta",
            "artist=Someone",
        ]
    )

    options = cli.create_options(args)

    assert options.input_path == Path(tmp_path / "book.pdf")
    assert options.voice == "nova"
    assert options.style == "learning"
    assert options.max_input_tokens == 1800
    assert options.jobs == 2
    assert options.max_cost_usd is None
    assert options.metadata == {"artist": "Someone"}


def test_cost_limit_defaults_to_configured_value(tmp_path):
    args = cli.build_parser().parse_args(["--in", "book.txt", "--out", str(tmp_path)])

    assert args.max_cost == cli.config.MAX_OPERATION_COST_USD


def test_estimate_prints_summary_without_synthesis(tmp_path, capsys):
    book = tmp_path / "book.txt"
    book.write_text("Chapter 1\nOne two three.\n\nChapter 2\nFour five.", encoding="utf-8")

    code = cli.main(["--in", str(book), "--out", str(tmp_path / "out"), "--estimate", "-q"])

    assert code == 0
    assert "2 chapters, 5 words" in capsys.readouterr().out
    assert not (tmp_path / "out").exists()


def test_errors_exit_with_status_one(tmp_path):
    code = cli.main(["--in", str(tmp_path / "missing.txt"), "--out", str(tmp_path / "out"), "-q"])

    assert code == 1
