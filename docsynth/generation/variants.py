"""
Variant Generator  —  Sentence Classification + Paraphrase
══════════════════════════════════════════════════════════

Per chunk:
  1. Split into sentences on terminal punctuation, drop anything shorter
     than `min_sentence_length` characters.
  2. Optionally run QualityControl (length bounds, near-duplicates).
  3. Classify each sentence by keyword:
       must / shall / required          → Critical
       should / recommend, or > 100 chars → Important
       otherwise                         → Standard
     and keep only the labels allowed by `class_filter`.
  4. Rewrite each sentence through the LanguageModelClient.

Local fallback
──────────────
  Any rewrite error (timeout, quota, malformed or empty response) switches
  that sentence to a local rewrite: each word found in SYNONYMS is replaced
  with probability 0.5, case preserved. If the coin flips left the sentence
  unchanged, the first dictionary word is replaced anyway. A sentence with
  no dictionary word at all is prefixed with "In other words, ".

  Without an injected rng, the coin flips are seeded from the sentence
  itself, so the fallback output for a given sentence never varies.

Every kept sentence yields exactly one VariantRecord.
"""

from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from docsynth.generation.quality import QualityControl
from docsynth.interfaces import LanguageModelClient
from docsynth.jobs.retry import retry_async

logger = logging.getLogger(__name__)

DEFAULT_MIN_SENTENCE_LENGTH = 20
IMPORTANT_LENGTH            = 100
SUBSTITUTION_PROBABILITY    = 0.5
NEUTRAL_PREFIX              = "In other words, "

_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]+")


class Classification(str, Enum):
    CRITICAL  = "Critical"
    IMPORTANT = "Important"
    STANDARD  = "Standard"


_CRITICAL_KEYWORDS  = ("must", "shall", "required")
_IMPORTANT_KEYWORDS = ("should", "recommend")

# Domain synonyms for contract / policy language
SYNONYMS: dict[str, str] = {
    "shall":       "must",
    "must":        "shall",
    "agreement":   "contract",
    "contract":    "agreement",
    "party":       "signatory",
    "parties":     "signatories",
    "terminate":   "end",
    "terminated":  "ended",
    "termination": "ending",
    "provide":     "supply",
    "provided":    "supplied",
    "require":     "need",
    "required":    "needed",
    "obtain":      "acquire",
    "notify":      "inform",
    "payment":     "remittance",
    "pay":         "remit",
    "purchase":    "buy",
    "ensure":      "guarantee",
    "commence":    "begin",
    "prior":       "previous",
    "approximately": "roughly",
    "sufficient":  "adequate",
    "additional":  "further",
    "assist":      "help",
    "permit":      "allow",
    "prohibited":  "forbidden",
    "regarding":   "concerning",
    "modify":      "change",
    "review":      "examine",
    "obligation":  "duty",
    "obligations": "duties",
}

_SYNONYM_RE = re.compile(
    r"\b(" + "|".join(sorted(map(re.escape, SYNONYMS), key=len, reverse=True)) + r")\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class VariantRecord:
    input:          str
    classification: Classification
    output:         str
    used_fallback:  bool = field(default=False, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "input":          self.input,
            "classification": self.classification.value,
            "output":         self.output,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VariantRecord":
        return cls(
            input=data["input"],
            classification=Classification(data["classification"]),
            output=data["output"],
        )


# ---------------------------------------------------------------------------
# Sentence helpers
# ---------------------------------------------------------------------------

def split_sentences(text: str, min_length: int = DEFAULT_MIN_SENTENCE_LENGTH) -> list[str]:
    sentences = (s.strip() for s in _SENTENCE_RE.findall(text))
    return [s for s in sentences if len(s) >= min_length]


def classify(sentence: str) -> Classification:
    lowered = sentence.lower()
    if any(k in lowered for k in _CRITICAL_KEYWORDS):
        return Classification.CRITICAL
    if any(k in lowered for k in _IMPORTANT_KEYWORDS) or len(sentence) > IMPORTANT_LENGTH:
        return Classification.IMPORTANT
    return Classification.STANDARD


def parse_class_filter(value: str) -> frozenset[Classification] | None:
    """
    "all" → None (keep everything); otherwise labels joined by "_",
    e.g. "critical_important".
    """
    value = (value or "all").strip().lower()
    if value == "all":
        return None
    labels = {c.value.lower(): c for c in Classification}
    allowed: set[Classification] = set()
    for part in value.split("_"):
        if part not in labels:
            raise ValueError(f"Unknown classification in filter: {part!r}")
        allowed.add(labels[part])
    return frozenset(allowed)


def _match_case(original: str, replacement: str) -> str:
    if original.isupper() and len(original) > 1:
        return replacement.upper()
    if original[0].isupper():
        return replacement[0].upper() + replacement[1:]
    return replacement


def local_rewrite(sentence: str, rng: random.Random | None = None) -> str:
    """Dictionary-based paraphrase used when the language model is unavailable."""
    matches = list(_SYNONYM_RE.finditer(sentence))
    if not matches:
        if sentence[:1].isupper() and sentence[1:2].islower():
            sentence = sentence[0].lower() + sentence[1:]
        return NEUTRAL_PREFIX + sentence

    rng = rng or random.Random(sentence)
    chosen = [m for m in matches if rng.random() < SUBSTITUTION_PROBABILITY]
    if not chosen:
        chosen = [matches[0]]

    parts: list[str] = []
    cursor = 0
    for m in chosen:
        word = m.group(0)
        parts.append(sentence[cursor:m.start()])
        parts.append(_match_case(word, SYNONYMS[word.lower()]))
        cursor = m.end()
    parts.append(sentence[cursor:])
    return "".join(parts)


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------

class VariantGenerator:
    """
    Usage:
        generator = VariantGenerator(ChatRewriteClient(), class_filter="critical")
        records = await generator.generate(chunk.text)
    """

    def __init__(
        self,
        client:              LanguageModelClient | None,
        min_sentence_length: int = DEFAULT_MIN_SENTENCE_LENGTH,
        rng:                 random.Random | None = None,
        class_filter:        str = "all",
        quality:             QualityControl | None = None,
        rewrite_attempts:    int = 1,
        retry_delay:         float = 1.0,
    ) -> None:
        self._client              = client
        self._min_sentence_length = min_sentence_length
        self._rng                 = rng
        self._allowed             = parse_class_filter(class_filter)
        self._quality             = quality
        self._rewrite_attempts    = max(1, rewrite_attempts)
        self._retry_delay         = retry_delay

    async def generate(self, chunk_text: str) -> list[VariantRecord]:
        sentences = split_sentences(chunk_text, self._min_sentence_length)
        if self._quality is not None:
            sentences = self._quality.filter(sentences).valid

        records: list[VariantRecord] = []
        for sentence in sentences:
            label = classify(sentence)
            if self._allowed is not None and label not in self._allowed:
                continue
            output, used_fallback = await self._rewrite(sentence)
            records.append(VariantRecord(sentence, label, output, used_fallback))

        logger.debug(
            "VariantGenerator | sentences=%d records=%d fallbacks=%d",
            len(sentences), len(records), sum(r.used_fallback for r in records),
        )
        return records

    async def _rewrite(self, sentence: str) -> tuple[str, bool]:
        if self._client is not None:
            try:
                output = await retry_async(
                    lambda: self._client.rewrite(sentence),
                    attempts=self._rewrite_attempts,
                    base_delay=self._retry_delay,
                    label="rewrite",
                )
                if isinstance(output, str) and output.strip():
                    return output.strip(), False
                logger.warning("Rewrite returned empty output, using local fallback")
            except Exception as exc:
                logger.warning("Rewrite failed, using local fallback | error=%s", exc)
        return local_rewrite(sentence, self._rng), True
