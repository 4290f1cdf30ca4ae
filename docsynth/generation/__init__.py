"""
Dataset generation: schema inference, synthetic records, sentence variants,
and output serialization.
"""

from docsynth.generation.fields import Field, FieldAnalyzer, FieldType
from docsynth.generation.formats import OutputFormat, from_jsonl, to_jsonl
from docsynth.generation.synthetic import SyntheticRecordGenerator
from docsynth.generation.variants import Classification, VariantGenerator, VariantRecord

__all__ = [
    "Field",
    "FieldAnalyzer",
    "FieldType",
    "OutputFormat",
    "from_jsonl",
    "to_jsonl",
    "SyntheticRecordGenerator",
    "Classification",
    "VariantGenerator",
    "VariantRecord",
]
