"""
Field / schema analysis over an ExtractionResult.

Sources, applied in order (each only adds names not seen yet, compared
case-insensitively, first occurrence wins):

  (a) text     — "Label: value" / "Label - value" lines
  (b) table    — header cells of tables with at least one data row,
                 sampled from the first data row
  (c) section  — section titles, sampled from the first 100 chars of content

Source (b) always runs after (a), so a document with no label lines still
gets its schema from table headers.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum

from docsynth.processing.extractor import ExtractionResult

logger = logging.getLogger(__name__)

LABEL_MIN_LENGTH = 2
LABEL_MAX_LENGTH = 50
SECTION_SAMPLE_CHARS = 100

_COLON_RE = re.compile(r"^([^:]+):\s*(.+)$")
_DASH_RE  = re.compile(r"^([^-]+)-\s*(.+)$")

_INTEGER_RE = re.compile(r"^\d+$")
_DECIMAL_RE = re.compile(r"^\d+\.\d+$")
_DATE_RES = (
    re.compile(r"^\d{1,2}/\d{1,2}/\d{2,4}$"),
    re.compile(r"^\d{2,4}-\d{1,2}-\d{1,2}$"),
)


class FieldType(str, Enum):
    INTEGER = "integer"
    DECIMAL = "decimal"
    DATE    = "date"
    TEXT    = "text"
    STRING  = "string"


class FieldSource(str, Enum):
    TEXT    = "text"
    TABLE   = "table"
    SECTION = "section"


@dataclass(frozen=True)
class Field:
    name:   str
    type:   FieldType
    sample: str
    source: FieldSource

    def to_dict(self) -> dict[str, str]:
        return {
            "name":   self.name,
            "type":   self.type.value,
            "sample": self.sample,
            "source": self.source.value,
        }


def infer_type(value: str) -> FieldType:
    value = value.strip()
    if _INTEGER_RE.match(value):
        return FieldType.INTEGER
    if _DECIMAL_RE.match(value):
        return FieldType.DECIMAL
    if any(p.match(value) for p in _DATE_RES):
        return FieldType.DATE
    return FieldType.STRING


class FieldAnalyzer:
    """Stateless; call analyze() once per document."""

    def analyze(self, result: ExtractionResult) -> list[Field]:
        fields: list[Field] = []
        seen: set[str] = set()

        def _add(field: Field) -> None:
            key = field.name.lower()
            if key in seen:
                return
            seen.add(key)
            fields.append(field)

        for field in self._from_text(result.text):
            _add(field)
        text_count = len(fields)

        for field in self._from_tables(result):
            _add(field)
        table_count = len(fields) - text_count

        for field in self._from_sections(result):
            _add(field)

        logger.info(
            "FieldAnalyzer | fields=%d text=%d table=%d section=%d",
            len(fields), text_count, table_count, len(fields) - text_count - table_count,
        )
        return fields

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    @staticmethod
    def _from_text(text: str) -> list[Field]:
        found: list[Field] = []
        for line in text.splitlines():
            if not line.strip():
                continue
            match = _COLON_RE.match(line) or _DASH_RE.match(line)
            if not match:
                continue
            name  = match.group(1).strip()
            value = match.group(2).strip()
            if not LABEL_MIN_LENGTH <= len(name) <= LABEL_MAX_LENGTH:
                continue
            found.append(Field(name, infer_type(value), value, FieldSource.TEXT))
        return found

    @staticmethod
    def _from_tables(result: ExtractionResult) -> list[Field]:
        found: list[Field] = []
        for table in result.tables:
            if not table.header_row or len(table.rows) < 2:
                continue
            sample_row = table.rows[1]
            for col, header in enumerate(table.header_row):
                name = header.strip()
                if len(name) < LABEL_MIN_LENGTH:
                    continue
                sample = sample_row[col].strip() if col < len(sample_row) else ""
                found.append(Field(name, infer_type(sample), sample, FieldSource.TABLE))
        return found

    @staticmethod
    def _from_sections(result: ExtractionResult) -> list[Field]:
        return [
            Field(
                name=section.title,
                type=FieldType.TEXT,
                sample=section.content[:SECTION_SAMPLE_CHARS].strip(),
                source=FieldSource.SECTION,
            )
            for section in result.sections
            if section.title and section.content
        ]
