"""Prompt-derived filenames for generated images.

A generated file is named after the most meaningful words of its prompt, so
a directory listing reads like a list of subjects:

    "Generate a photo of a red fox in the snow"  ->  red_fox_snow_1718031234567

The millisecond timestamp keeps names unique across calls with the same
prompt, and a ``_<n>`` suffix separates multiple outputs of one request.
"""

from __future__ import annotations

import re
import time

#: Function words and generic imaging verbs that say nothing about the subject.
STOP_WORDS: frozenset[str] = frozenset(
    {
        "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "from", "as", "is", "was", "are", "were", "been",
        "be", "have", "has", "had", "do", "does", "did", "will", "would", "could",
        "should", "may", "might", "must", "shall", "can", "need", "it", "its",
        "this", "that", "these", "those", "i", "you", "he", "she", "we", "they",
        "what", "which", "who", "where", "when", "why", "how", "all", "each",
        "every", "both", "few", "more", "most", "other", "some", "such", "no",
        "not", "only", "own", "same", "so", "than", "too", "very", "just", "also",
        "image", "picture", "photo", "generate", "create", "make", "show",
    }
)  # fmt: skip

MAX_WORDS = 5
FALLBACK_SLUG = "image"

_QUOTES = re.compile(r"[\"']")
_UNSAFE = re.compile(r"[^a-z0-9\s-]")


def prompt_slug(prompt: str) -> str:
    """Reduce a prompt to at most five underscore-joined keywords."""
    text = _UNSAFE.sub(" ", _QUOTES.sub(" ", prompt.lower()))
    words = [word for word in text.split() if len(word) > 2 and word not in STOP_WORDS]
    return "_".join(words[:MAX_WORDS]) or FALLBACK_SLUG


def derive_filename(prompt: str, index: int = 0, timestamp_ms: int | None = None) -> str:
    """Build a base filename (no extension) for output ``index`` of a prompt.

    Args:
        prompt: Free-text generation prompt.
        index: Zero-based position of the output within its request.
        timestamp_ms: Milliseconds since the epoch; defaults to now.

    Returns:
        ``<slug>_<timestamp>`` for the first output and
        ``<slug>_<timestamp>_<index + 1>`` for the rest.
    """
    if timestamp_ms is None:
        timestamp_ms = time.time_ns() // 1_000_000
    suffix = f"_{index + 1}" if index > 0 else ""
    return f"{prompt_slug(prompt)}_{timestamp_ms}{suffix}"
