"""
Paragraph Chunker  —  Overlapping, Paragraph-Respecting Segmentation
═════════════════════════════════════════════════════════════════════

Algorithm
─────────
  1. Normalize the text (Unicode NFC, strip zero-width characters,
     collapse 3+ newlines) and split on blank lines into paragraphs.
  2. Accumulate paragraphs (joined by a blank line) into a buffer.
  3. When appending the next paragraph would exceed `chunk_size` and the
     buffer is non-empty, flush the buffer as a chunk and seed the next
     buffer with the trailing whole words of the flushed chunk whose
     combined length is at most `overlap_size`.
  4. Flush the final non-empty buffer.

Oversized paragraphs
────────────────────
  A single paragraph longer than `chunk_size` is emitted whole, not
  subdivided. Downstream sentence splitting copes with long chunks, while
  a mid-paragraph cut would orphan a clause from its subject.
  `split_oversized=True` hard-splits such paragraphs at word boundaries.

Chunking is deterministic: the same (text, chunk_size, overlap_size)
always produces the same sequence.
"""

from __future__ import annotations

import logging
import math
import re
import unicodedata
from dataclasses import dataclass
from typing import Iterator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration constants
# ---------------------------------------------------------------------------

DEFAULT_CHUNK_SIZE   = 1000
DEFAULT_OVERLAP_SIZE = 100

PARAGRAPH_SEPARATOR = "\n\n"

_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")
_SENTENCE_END_RE    = re.compile(r"[.!?]+")

# Characters per credit / per estimated chunk
CHARS_PER_UNIT = 1000


# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Chunk:
    """
    One unit of work for the generators.

    text                 : overlap words (if any) + accumulated paragraphs
    index                : 0-based position in reading order
    source_overlap_words : words carried over from the previous chunk
    """
    text:                 str
    index:                int
    source_overlap_words: tuple[str, ...] = ()

    @property
    def char_count(self) -> int:
        return len(self.text)


@dataclass(frozen=True)
class ComplexityEstimate:
    """Rough processing estimate used to size jobs before they run."""
    text_length:       int
    word_count:        int
    sentence_count:    int
    complexity:        float   # 1.0 – 9.0
    estimated_chunks:  int
    estimated_credits: int
    estimated_seconds: int


# ---------------------------------------------------------------------------
# Core chunker
# ---------------------------------------------------------------------------

class TextChunker:
    """
    Stateless paragraph chunker.

    Usage:
        chunker = TextChunker(chunk_size=1000, overlap_size=100)
        for chunk in chunker.chunk(text):
            ...
    """

    def __init__(
        self,
        chunk_size:      int  = DEFAULT_CHUNK_SIZE,
        overlap_size:    int  = DEFAULT_OVERLAP_SIZE,
        split_oversized: bool = False,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if overlap_size < 0 or overlap_size >= chunk_size:
            raise ValueError(
                f"overlap_size must be in [0, chunk_size); got {overlap_size} for {chunk_size}"
            )
        self.chunk_size      = chunk_size
        self.overlap_size    = overlap_size
        self.split_oversized = split_oversized

    def chunk(self, text: str) -> Iterator[Chunk]:
        """Yield chunks in reading order."""
        paragraphs = split_paragraphs(text)
        if self.split_oversized:
            paragraphs = [piece for p in paragraphs for piece in self._hard_split(p)]

        buffer = ""
        carried: tuple[str, ...] = ()
        index = 0

        for para in paragraphs:
            candidate = f"{buffer}{PARAGRAPH_SEPARATOR}{para}" if buffer else para
            if buffer and len(candidate) > self.chunk_size:
                yield Chunk(text=buffer, index=index, source_overlap_words=carried)
                index += 1
                # the next buffer never holds only overlap: para follows at once
                carried = self._overlap_words(buffer)
                buffer = " ".join(carried)
                candidate = f"{buffer}{PARAGRAPH_SEPARATOR}{para}" if buffer else para
            buffer = candidate

        if buffer.strip():
            yield Chunk(text=buffer, index=index, source_overlap_words=carried)

    def chunk_list(self, text: str) -> list[Chunk]:
        chunks = list(self.chunk(text))
        logger.info(
            "TextChunker | chunks=%d chunk_size=%d overlap=%d avg_chars=%.0f",
            len(chunks), self.chunk_size, self.overlap_size,
            sum(c.char_count for c in chunks) / max(1, len(chunks)),
        )
        return chunks

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _overlap_words(self, text: str) -> tuple[str, ...]:
        """Trailing whole words whose space-joined length fits overlap_size."""
        if self.overlap_size == 0:
            return ()
        taken: list[str] = []
        length = 0
        for word in reversed(text.split()):
            added = len(word) + (1 if taken else 0)
            if length + added > self.overlap_size:
                break
            taken.append(word)
            length += added
        return tuple(reversed(taken))

    def _hard_split(self, paragraph: str) -> list[str]:
        if len(paragraph) <= self.chunk_size:
            return [paragraph]
        pieces: list[str] = []
        current: list[str] = []
        length = 0
        for word in paragraph.split():
            added = len(word) + (1 if current else 0)
            if current and length + added > self.chunk_size:
                pieces.append(" ".join(current))
                current, length = [], 0
                added = len(word)
            current.append(word)
            length += added
        if current:
            pieces.append(" ".join(current))
        return pieces


# ---------------------------------------------------------------------------
# Module helpers
# ---------------------------------------------------------------------------

def normalize_text(text: str) -> str:
    """
    Normalize Unicode, strip zero-width characters, collapse excess blank
    lines. Preserves paragraph breaks (double newlines).
    """
    text = unicodedata.normalize("NFC", text)
    text = re.sub(r"[\u00a0\u200b\u200c\u200d\ufeff]", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    lines = [line.rstrip() for line in text.splitlines()]
    return "\n".join(lines).strip()


def split_paragraphs(text: str) -> list[str]:
    text = normalize_text(text)
    return [p.strip() for p in _PARAGRAPH_SPLIT_RE.split(text) if p.strip()]


def estimate_complexity(text: str) -> ComplexityEstimate:
    """Length / word / sentence based sizing, with credit and chunk estimates."""
    length    = len(text)
    words     = len(text.split())
    sentences = len(_SENTENCE_END_RE.findall(text))

    avg_word_len     = length / max(1, words)
    avg_sentence_len = words / max(1, sentences)

    score = 1.0
    score += min(4.0, length / 10000)
    score += min(2.0, avg_sentence_len / 25)
    score += min(2.0, avg_word_len / 6)

    units = math.ceil(length / CHARS_PER_UNIT)
    return ComplexityEstimate(
        text_length=length,
        word_count=words,
        sentence_count=sentences,
        complexity=round(score, 1),
        estimated_chunks=units,
        estimated_credits=max(1, units),
        estimated_seconds=max(10, math.ceil(length / 300)),
    )
