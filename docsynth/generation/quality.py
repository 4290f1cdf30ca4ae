"""
Clause quality control: length bounds and near-duplicate suppression.

A clause is rejected when its stripped length is outside
[min_length, max_length], or when its word-set Jaccard similarity to an
already accepted clause exceeds `similarity_threshold`.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable

logger = logging.getLogger(__name__)

_WORD_SPLIT_RE = re.compile(r"\W+")


@dataclass(frozen=True)
class RejectedClause:
    clause: str
    reason: str   # too_short | too_long | duplicate


@dataclass
class QualityReport:
    valid:    list[str]            = field(default_factory=list)
    rejected: list[RejectedClause] = field(default_factory=list)


def jaccard_similarity(a: str, b: str) -> float:
    words_a = {w for w in _WORD_SPLIT_RE.split(a.lower()) if w}
    words_b = {w for w in _WORD_SPLIT_RE.split(b.lower()) if w}
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


class QualityControl:
    def __init__(
        self,
        min_length:           int   = 10,
        max_length:           int   = 1500,
        similarity_threshold: float = 0.85,
    ) -> None:
        self.min_length           = min_length
        self.max_length           = max_length
        self.similarity_threshold = similarity_threshold

    def filter(self, clauses: Iterable[str]) -> QualityReport:
        report = QualityReport()
        for clause in clauses:
            trimmed = clause.strip()
            if len(trimmed) < self.min_length:
                report.rejected.append(RejectedClause(clause, "too_short"))
            elif len(trimmed) > self.max_length:
                report.rejected.append(RejectedClause(clause, "too_long"))
            elif any(
                jaccard_similarity(kept, trimmed) > self.similarity_threshold
                for kept in report.valid
            ):
                report.rejected.append(RejectedClause(clause, "duplicate"))
            else:
                report.valid.append(trimmed)

        if report.rejected:
            logger.debug(
                "QualityControl | valid=%d rejected=%d",
                len(report.valid), len(report.rejected),
            )
        return report
