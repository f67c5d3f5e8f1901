"""Minimum-content policy for normalized curriculum text."""

from __future__ import annotations

from dataclasses import dataclass

MIN_TEXT_CHARS = 100
MIN_WORD_COUNT = 50

TOO_SHORT_REASON   = "Text too short (less than {min_chars} characters)"
TOO_SPARSE_REASON  = "Not enough words (less than {min_words})"


@dataclass(frozen=True)
class ValidationResult:
    is_valid:   bool
    word_count: int
    reason:     str | None = None


def count_words(text: str) -> int:
    """Whitespace-delimited tokens."""
    return len(text.split())


def validate(
    clean_text: str,
    min_chars:  int = MIN_TEXT_CHARS,
    min_words:  int = MIN_WORD_COUNT,
) -> ValidationResult:
    """
    Length is checked before word count, so a short text is always reported
    as too short even when it is also sparse. Words are not counted for a
    too-short text; its word_count is 0.
    """
    if len(clean_text) < min_chars:
        return ValidationResult(
            is_valid=False,
            word_count=0,
            reason=TOO_SHORT_REASON.format(min_chars=min_chars),
        )

    word_count = count_words(clean_text)
    if word_count < min_words:
        return ValidationResult(
            is_valid=False,
            word_count=word_count,
            reason=TOO_SPARSE_REASON.format(min_words=min_words),
        )

    return ValidationResult(is_valid=True, word_count=word_count)
