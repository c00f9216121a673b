from __future__ import annotations

import pytest

from book_narrator.errors import CostLimitExceeded
from book_narrator.text.estimate import (
    CostEstimate,
    check_cost,
    count_words,
    estimate_batch,
    estimate_text,
)


@pytest.mark.parametrize(
    "text, expected",
    [("", 0), ("   \n ", 0), ("one", 1), ("one two\nthree\tfour", 4)],
)
def test_count_words(text, expected):
    assert count_words(text) == expected


def test_estimate_text_uses_reading_speed_and_price():
    estimate = estimate_text("word " * 320, words_per_minute=160, price_per_minute_usd=0.5)

    assert estimate == CostEstimate(word_count=320, minutes=2.0, cost_usd=1.0)


def test_estimate_batch_sums_words():
    estimate = estimate_batch(["a b", "c d e", ""], words_per_minute=5, price_per_minute_usd=1.0)

    assert estimate.word_count == 5
    assert estimate.minutes == pytest.approx(1.0)
    assert estimate.cost_usd == pytest.approx(1.0)


def test_check_cost_rejects_estimates_over_the_limit():
    with pytest.raises(CostLimitExceeded) as excinfo:
        check_cost(CostEstimate(word_count=1, minutes=1.0, cost_usd=2.5), max_cost_usd=2.0)

    assert excinfo.value.cost_usd == 2.5
    assert excinfo.value.limit_usd == 2.0


def test_check_cost_allows_estimates_at_the_limit_or_without_one():
    check_cost(CostEstimate(word_count=1, minutes=1.0, cost_usd=2.0), max_cost_usd=2.0)
    check_cost(CostEstimate(word_count=1, minutes=1.0, cost_usd=99.0), max_cost_usd=None)


def test_as_dict_rounds_for_display():
    estimate = CostEstimate(word_count=10, minutes=1.23456, cost_usd=0.0123456)

    assert estimate.as_dict() == {"word_count": 10, "minutes": 1.23, "cost_usd": 0.0123}
