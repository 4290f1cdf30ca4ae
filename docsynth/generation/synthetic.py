"""
Synthetic Record Generator
══════════════════════════

Produces N fabricated records that follow the inferred schema.

Value selection per field:
  1. Harvested pool: if any table row carried a value under a header with
     exactly this field's name, draw uniformly from those real values.
  2. Otherwise synthesize by type:
       integer → 0–999
       decimal → 0–1000, 2 decimal places
       date    → ISO date within the last 5 years, never after today
       text    → 3–5 filler sentences
       string  → shaped after the sample (email, person name, phone, zip),
                 else "Sample-{name}-{i}"; no sample → "Value-{i}"

The random source is injectable so tests can pin the output.
"""

from __future__ import annotations

import logging
import random
import re
from datetime import date, timedelta
from typing import Any, Sequence

from docsynth.generation.fields import Field, FieldType
from docsynth.processing.extractor import ExtractionResult

logger = logging.getLogger(__name__)

MIN_RECORDS = 1
MAX_RECORDS = 1000

# Generated dates fall between today and this many days back (5 years)
DATE_WINDOW_DAYS = 5 * 365

SyntheticRecord = dict[str, Any]

FILLER_SENTENCES = (
    "The data shown here is completely synthetic and generated for demonstration purposes.",
    "All information presented is fictional and does not represent real individuals or entities.",
    "This sample data can be used to test applications without privacy concerns.",
    "No real personal information is contained in this dataset.",
    "The values are randomly generated according to the detected data patterns.",
    "This synthetic data maintains the format of the original document.",
    "The structure reflects what was detected in the source PDF document.",
    "Sample records follow the same schema as the original but contain fictional data.",
    "These values are artificially created and not extracted from the source.",
    "Use this data for testing and development purposes only.",
    "The format matches the original document but values are randomized.",
    "This synthetic data is useful for application testing and development.",
)

FIRST_NAMES = ("John", "Jane", "Alex", "Sarah", "Mike", "Lisa", "David", "Emily", "Robert", "Emma")
LAST_NAMES  = ("Smith", "Johnson", "Brown", "Davis", "Wilson", "Lee", "Taylor", "Clark", "Lewis", "Young")

_NAME_RE  = re.compile(r"^[A-Z][a-z]+\s[A-Z][a-z]+$")
_PHONE_RE = re.compile(r"^\d{3}-\d{3}-\d{4}$")
_ZIP_RE   = re.compile(r"^\d{5}$")


def clamp_count(count: int) -> int:
    return min(max(int(count), MIN_RECORDS), MAX_RECORDS)


def harvest_table_values(result: ExtractionResult) -> dict[str, list[str]]:
    """Header name → every data-row value found under it, across all tables."""
    pool: dict[str, list[str]] = {}
    for table in result.tables:
        if len(table.rows) < 2:
            continue
        header = table.header_row
        for row in table.rows[1:]:
            for col, value in enumerate(row):
                name = header[col].strip() if col < len(header) else ""
                if name:
                    pool.setdefault(name, []).append(value)
    return pool


class SyntheticRecordGenerator:
    """
    Usage:
        generator = SyntheticRecordGenerator()
        records = generator.generate(fields, extraction, count=50)
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def generate(
        self,
        fields: Sequence[Field],
        result: ExtractionResult,
        count:  int = 10,
    ) -> list[SyntheticRecord]:
        count = clamp_count(count)
        pool = harvest_table_values(result)
        today = date.today()

        records = [
            {f.name: self._value(f, pool.get(f.name), i, today) for f in fields}
            for i in range(count)
        ]
        logger.info(
            "SyntheticRecordGenerator | records=%d fields=%d harvested=%d",
            len(records), len(fields), sum(1 for f in fields if pool.get(f.name)),
        )
        return records

    # ------------------------------------------------------------------
    # Value synthesis
    # ------------------------------------------------------------------

    def _value(self, field: Field, samples: list[str] | None, i: int, today: date) -> Any:
        rng = self._rng
        if samples:
            return rng.choice(samples)

        if field.type is FieldType.INTEGER:
            return rng.randint(0, 999)
        if field.type is FieldType.DECIMAL:
            return round(rng.random() * 1000, 2)
        if field.type is FieldType.DATE:
            return (today - timedelta(days=rng.randint(0, DATE_WINDOW_DAYS))).isoformat()
        if field.type is FieldType.TEXT:
            return self.paragraph(rng.randint(3, 5))
        return self._string_value(field, i)

    def _string_value(self, field: Field, i: int) -> str:
        rng = self._rng
        sample = field.sample
        if not sample:
            return f"Value-{i}"
        if "@" in sample:
            return f"user{i}{rng.randint(0, 99)}@example.com"
        if _NAME_RE.match(sample):
            return f"{FIRST_NAMES[i % len(FIRST_NAMES)]} {rng.choice(LAST_NAMES)}"
        if _PHONE_RE.match(sample):
            return f"{rng.randint(100, 999)}-{rng.randint(100, 999)}-{rng.randint(1000, 9999)}"
        if _ZIP_RE.match(sample):
            return str(rng.randint(10000, 99999))
        return f"Sample-{field.name}-{i}"

    def paragraph(self, sentence_count: int = 3) -> str:
        return " ".join(self._rng.choice(FILLER_SENTENCES) for _ in range(sentence_count))
