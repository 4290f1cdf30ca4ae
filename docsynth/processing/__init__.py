"""
Document Processing Package
════════════════════════════

  Extraction (text layer → layout → OCR) → Chunking → Batch execution

Modules
───────
  validation.py  Tags strategy output Valid / Invalid
  layout.py      Reading-order lines, tables, sections from positioned spans
  ocr.py         Extraction strategies (pypdf, PyMuPDF, OCR, DOCX, plain text)
  extractor.py   Coordinator that runs the strategy cascade
  chunking.py    Overlapping paragraph chunker + complexity estimate
  batch.py       Bounded-concurrency runner with per-item fault isolation
"""

from docsynth.processing.batch import BatchOutcome, BatchProcessor, BatchProgress
from docsynth.processing.chunking import Chunk, TextChunker, estimate_complexity
from docsynth.processing.extractor import ExtractionCoordinator, ExtractionOptions, ExtractionResult

__all__ = [
    "BatchOutcome",
    "BatchProcessor",
    "BatchProgress",
    "Chunk",
    "TextChunker",
    "estimate_complexity",
    "ExtractionCoordinator",
    "ExtractionOptions",
    "ExtractionResult",
]
