"""
Output serialization.

Record shapes for the variant path:

  openai       {"messages": [system, user=input, assistant=output]}
  instruction  {"instruction": input, "completion": output, "classification": label}
  prompt       {"prompt": input, "completion": output}
  jsonl        {"input", "classification", "output"}
  csv          header input,classification,output; every cell quoted

JSONL output is one JSON object per line with no trailing newline.
Synthetic records are always JSONL of the raw mapping.
"""

from __future__ import annotations

import csv
import io
import json
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence

from docsynth.generation.variants import VariantRecord

SYSTEM_PROMPT = "You are an expert in this domain."

CSV_HEADER = "input,classification,output"

JSONL_CONTENT_TYPE = "application/jsonl"
CSV_CONTENT_TYPE   = "text/csv"


class OutputFormat(str, Enum):
    OPENAI      = "openai"
    INSTRUCTION = "instruction"
    PROMPT      = "prompt"
    JSONL       = "jsonl"
    CSV         = "csv"


def shape_variant(record: VariantRecord, fmt: OutputFormat) -> dict[str, Any]:
    if fmt is OutputFormat.OPENAI:
        return {
            "messages": [
                {"role": "system",    "content": SYSTEM_PROMPT},
                {"role": "user",      "content": record.input},
                {"role": "assistant", "content": record.output},
            ]
        }
    if fmt is OutputFormat.INSTRUCTION:
        return {
            "instruction":    record.input,
            "completion":     record.output,
            "classification": record.classification.value,
        }
    if fmt is OutputFormat.PROMPT:
        return {"prompt": record.input, "completion": record.output}
    return record.to_dict()


def to_jsonl(objects: Iterable[Mapping[str, Any]]) -> str:
    return "\n".join(json.dumps(obj, ensure_ascii=False, default=str) for obj in objects)


def from_jsonl(text: str) -> list[dict[str, Any]]:
    # Only "\n" separates records; U+2028 and friends may appear unescaped inside strings
    return [json.loads(line) for line in text.split("\n") if line.strip()]


def to_csv(records: Sequence[VariantRecord]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for record in records:
        writer.writerow([record.input, record.classification.value, record.output])
    body = buffer.getvalue().rstrip("\n")
    return f"{CSV_HEADER}\n{body}" if body else CSV_HEADER


def serialize_variants(
    records: Sequence[VariantRecord],
    fmt:     OutputFormat | str = OutputFormat.OPENAI,
) -> tuple[str, str]:
    """Return (payload, content_type)."""
    fmt = OutputFormat(fmt)
    if fmt is OutputFormat.CSV:
        return to_csv(records), CSV_CONTENT_TYPE
    return to_jsonl(shape_variant(r, fmt) for r in records), JSONL_CONTENT_TYPE


def serialize_records(records: Sequence[Mapping[str, Any]]) -> tuple[str, str]:
    return to_jsonl(records), JSONL_CONTENT_TYPE
