"""
Candidate text validation.

Each extraction strategy produces a candidate; this module decides whether
the candidate looks like real text and tags it ``Valid`` or ``Invalid``.
The coordinator chooses among tagged candidates instead of catching
exceptions from strategies.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Union

# Candidates shorter than this (after stripping) are rejected outright
MIN_TEXT_LENGTH = 25

# More than this share of unusual symbols marks the text as low quality
MAX_SYMBOL_RATIO = 0.1

_WORD_RE        = re.compile(r"\b\w{3,}\b")
_PUNCTUATION_RE = re.compile(r"[.,;:?!]")
_WHITESPACE_RE  = re.compile(r"\s")
_SYMBOL_RE      = re.compile(r"[^\w\s.,;:?!'\"()\-–—]")
_REPEAT_RE      = re.compile(r"(.)\1{5,}")


@dataclass(frozen=True)
class Valid:
    """A candidate that passed validation."""
    method:      str
    text:        str
    low_quality: bool = False
    extras:      dict = field(default_factory=dict, compare=False)

    is_valid = True

    @property
    def length(self) -> int:
        return len(self.text)


@dataclass(frozen=True)
class Invalid:
    """A candidate that failed validation (text may still be non-empty)."""
    method: str
    reason: str
    text:   str = ""
    extras: dict = field(default_factory=dict, compare=False)

    is_valid = False

    @property
    def length(self) -> int:
        return len(self.text)


Candidate = Union[Valid, Invalid]


def check_text(text: str) -> tuple[bool, str]:
    """
    Return (ok, reason) for a piece of extracted text.

    reason is "insufficient_content", "poor_quality", "potential_ocr_issues"
    or "good_quality".
    """
    if not text or len(text.strip()) < MIN_TEXT_LENGTH:
        return False, "insufficient_content"

    has_words       = bool(_WORD_RE.search(text))
    has_punctuation = bool(_PUNCTUATION_RE.search(text))
    has_whitespace  = bool(_WHITESPACE_RE.search(text))

    if not (has_words and (has_punctuation or has_whitespace)):
        return False, "poor_quality"

    if is_low_quality(text):
        return True, "potential_ocr_issues"
    return True, "good_quality"


def is_low_quality(text: str) -> bool:
    """Excessive symbols or long runs of one character (typical OCR noise)."""
    if not text:
        return False
    symbols = len(_SYMBOL_RE.findall(text))
    return symbols > len(text) * MAX_SYMBOL_RATIO or bool(_REPEAT_RE.search(text))


def validate_candidate(method: str, text: str, **extras) -> Candidate:
    """Tag a strategy's raw output."""
    text = text or ""
    ok, reason = check_text(text)
    if ok:
        return Valid(
            method=method,
            text=text,
            low_quality=reason == "potential_ocr_issues",
            extras=extras,
        )
    return Invalid(method=method, reason=reason, text=text, extras=extras)
