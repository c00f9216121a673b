"""Narration length and cost estimates from word counts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from .. import config
from ..errors import CostLimitExceeded


@dataclass(frozen=True)
class CostEstimate:
    word_count: int
    minutes: float
    cost_usd: float

    def as_dict(self) -> dict:
        return {
            "word_count": self.word_count,
            "minutes": round(self.minutes, 2),
            "cost_usd": round(self.cost_usd, 4),
        }


def count_words(text: str) -> int:
    return len(text.split()) if text else 0


def estimate_words(
    word_count: int,
    *,
    words_per_minute: float = config.WORDS_PER_MINUTE,
    price_per_minute_usd: float = config.PRICE_PER_MINUTE_USD,
) -> CostEstimate:
    minutes = word_count / words_per_minute
    return CostEstimate(
        word_count=word_count,
        minutes=minutes,
        cost_usd=minutes * price_per_minute_usd,
    )


def estimate_text(text: str, **rates: float) -> CostEstimate:
    """Estimate duration and cost for a single text."""

    return estimate_words(count_words(text), **rates)


def estimate_batch(texts: Iterable[str], **rates: float) -> CostEstimate:
    """Estimate duration and cost for a set of texts."""

    return estimate_words(sum(count_words(text) for text in texts), **rates)


def check_cost(
    estimate: CostEstimate, max_cost_usd: Optional[float] = config.MAX_OPERATION_COST_USD
) -> None:
    """Raise :class:`CostLimitExceeded` when *estimate* is over the limit.

    A limit of ``None`` disables the guard.
    """

    if max_cost_usd is not None and estimate.cost_usd > max_cost_usd:
        raise CostLimitExceeded(estimate.cost_usd, max_cost_usd)


__all__ = [
    "CostEstimate",
    "check_cost",
    "count_words",
    "estimate_batch",
    "estimate_text",
    "estimate_words",
]
