"""Env-based tunables for segmentation, chunking and cost estimation."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Token approximation: 1 token ~ 4 characters. Recalibrate here, not in the chunker.
CHARS_PER_TOKEN = int(os.environ.get("BOOK_NARRATOR_CHARS_PER_TOKEN", "4"))
# Hard input limit of the speech endpoint, and the share of it kept in reserve.
MAX_INPUT_TOKENS = int(os.environ.get("BOOK_NARRATOR_MAX_INPUT_TOKENS", "2000"))
SAFETY_TOKENS = int(os.environ.get("BOOK_NARRATOR_SAFETY_TOKENS", "400"))

# Segmentation
BLOCK_SIZE = int(os.environ.get("BOOK_NARRATOR_BLOCK_SIZE", "5000"))
SHORT_TITLE_THRESHOLD = int(os.environ.get("BOOK_NARRATOR_SHORT_TITLE_THRESHOLD", "80"))

# Billing: average narration speed and approximate gpt-4o-mini-tts price
WORDS_PER_MINUTE = float(os.environ.get("BOOK_NARRATOR_WORDS_PER_MINUTE", "160"))
PRICE_PER_MINUTE_USD = float(os.environ.get("BOOK_NARRATOR_PRICE_PER_MINUTE_USD", "0.0065"))
MAX_OPERATION_COST_USD = float(os.environ.get("BOOK_NARRATOR_MAX_OPERATION_COST_USD", "2.0"))

# Speech provider
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "").strip()
OPENAI_TTS_MODEL = os.environ.get("OPENAI_TTS_MODEL", "").strip() or "gpt-4o-mini-tts"
REQUEST_TIMEOUT = float(os.environ.get("BOOK_NARRATOR_REQUEST_TIMEOUT", "120"))

CACHE_DIR = Path(
    os.environ.get("BOOK_NARRATOR_CACHE", Path.home() / ".cache" / "book_narrator")
)
