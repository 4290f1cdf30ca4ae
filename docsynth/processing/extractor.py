"""
Extraction Coordinator
══════════════════════

Runs the ordered strategy list against raw document bytes, chooses among
the tagged candidates, and attaches the document structure (pages, tables,
sections, metadata) the generators need.

Strategy order for PDFs:
  1.  text_layer  (pypdf)
  2.  layout      (PyMuPDF positioned spans)
  3.  ocr         (rasterize + OcrEngine), only when `use_ocr` is set or
                  nothing earlier validated (last resort)

Selection:
  attempt_all_methods=False → first Valid candidate wins
  attempt_all_methods=True  → every strategy runs, longest Valid wins
  no Valid candidate        → longest non-empty candidate, validated=False
  nothing non-empty         → ExtractionFailed(attempts)

Structure is always taken from the layout pass when the input is a PDF,
even if another strategy's text won: reading order and table geometry
only exist there.

This module is the only place that knows about the strategy cascade.
Callers only see ExtractionResult.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace

from docsynth.core.exceptions import ExtractionFailed, UnsupportedDocument
from docsynth.interfaces import OcrEngine
from docsynth.processing.layout import (
    Line,
    PageLayout,
    Section,
    Table,
    detect_sections,
    detect_sections_from_text,
    detect_tables,
)
from docsynth.processing.ocr import (
    DEFAULT_OCR_SCALE,
    DEFAULT_OCR_WORKERS,
    BaseExtractionStrategy,
    DocumentMetadata,
    DocxStrategy,
    LayoutStrategy,
    OcrStrategy,
    PlainTextStrategy,
    TextLayerStrategy,
)
from docsynth.processing.validation import Candidate, Valid, is_low_quality

logger = logging.getLogger(__name__)

PDF_MIME  = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

# Synthetic line spacing for text that carries no coordinates
_PLAIN_LINE_HEIGHT = 12.0


# ---------------------------------------------------------------------------
# Options and result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExtractionOptions:
    use_ocr:             bool = False
    attempt_all_methods: bool = False
    detect_tables:       bool = True


@dataclass(frozen=True)
class ExtractionAttempt:
    """Diagnostics for one strategy run."""
    method: str
    length: int
    valid:  bool
    reason: str


@dataclass(frozen=True)
class ExtractionResult:
    """
    Authoritative extraction output for one document version.

    text      : chosen candidate's text
    pages     : positioned pages (layout pass, or one synthetic page)
    tables    : detected tables (empty when detect_tables is off)
    sections  : detected sections
    metadata  : page count, producer, encryption, low-quality flag
    method    : winning strategy name
    attempts  : every strategy that ran, in order
    validated : False when no candidate passed validation and the longest
                raw candidate was returned instead
    """
    text:      str
    pages:     tuple[PageLayout, ...]
    tables:    tuple[Table, ...]
    sections:  tuple[Section, ...]
    metadata:  DocumentMetadata
    method:    str
    attempts:  tuple[ExtractionAttempt, ...] = ()
    validated: bool = True


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------

class ExtractionCoordinator:
    """
    Stateless coordinator. The OCR engine is optional; without one the OCR
    strategy is simply not part of the cascade.

    Usage:
        coordinator = ExtractionCoordinator(ocr_engine=TextractOcrEngine())
        result = await coordinator.extract(pdf_bytes, "application/pdf")
    """

    def __init__(
        self,
        ocr_engine:      OcrEngine | None = None,
        ocr_max_workers: int   = DEFAULT_OCR_WORKERS,
        ocr_scale:       float = DEFAULT_OCR_SCALE,
    ) -> None:
        self._text_layer = TextLayerStrategy()
        self._layout     = LayoutStrategy()
        self._ocr = (
            OcrStrategy(ocr_engine, max_workers=ocr_max_workers, scale=ocr_scale)
            if ocr_engine is not None else None
        )

    async def extract(
        self,
        data:      bytes,
        mime_type: str = PDF_MIME,
        options:   ExtractionOptions | None = None,
    ) -> ExtractionResult:
        options = options or ExtractionOptions()
        t0 = time.monotonic()
        kind = _document_kind(data, mime_type)

        if kind == "pdf":
            candidates = await self._run_pdf_cascade(data, options)
        else:
            strategy: BaseExtractionStrategy = (
                DocxStrategy() if kind == "docx" else PlainTextStrategy()
            )
            candidates = [await strategy.extract(data)]

        attempts = tuple(
            ExtractionAttempt(
                method=c.method,
                length=c.length,
                valid=c.is_valid,
                reason=getattr(c, "reason", "ok"),
            )
            for c in candidates
        )
        chosen, validated = _select(candidates, options.attempt_all_methods)
        if chosen is None:
            logger.error(
                "Extraction | no strategy produced text attempts=%s",
                [(a.method, a.length, a.reason) for a in attempts],
            )
            raise ExtractionFailed([(a.method, a.length, a.reason) for a in attempts])

        if not validated:
            logger.warning(
                "Extraction | no valid candidate, using longest raw text method=%s chars=%d",
                chosen.method, chosen.length,
            )

        pages = await self._structure_pages(data, kind, candidates, chosen)
        result = self._build_result(chosen, candidates, pages, attempts, validated, options)

        logger.info(
            "Extraction | method=%s chars=%d pages=%d tables=%d sections=%d "
            "validated=%s elapsed_ms=%.0f",
            result.method, len(result.text), len(result.pages), len(result.tables),
            len(result.sections), result.validated, (time.monotonic() - t0) * 1000,
        )
        return result

    # ------------------------------------------------------------------
    # Cascade
    # ------------------------------------------------------------------

    async def _run_pdf_cascade(self, data: bytes, options: ExtractionOptions) -> list[Candidate]:
        candidates: list[Candidate] = []
        ordered: list[BaseExtractionStrategy] = [self._text_layer, self._layout]
        if self._ocr is not None:
            ordered.append(self._ocr)

        for strategy in ordered:
            have_valid = any(c.is_valid for c in candidates)
            if have_valid and not options.attempt_all_methods:
                break
            if strategy is self._ocr and have_valid and not options.use_ocr:
                continue   # OCR only as last resort unless requested
            candidates.append(await strategy.extract(data))

        return candidates

    async def _structure_pages(
        self,
        data:       bytes,
        kind:       str,
        candidates: list[Candidate],
        chosen:     Candidate,
    ) -> tuple[PageLayout, ...]:
        """Positioned pages from the layout pass, running it if the cascade stopped early."""
        if kind == "pdf":
            layout = next((c for c in candidates if c.method == self._layout.strategy_name), None)
            if layout is None:
                layout = await self._layout.extract(data)
            pages = layout.extras.get("pages") or []
            if pages:
                return tuple(pages)
        return (_plain_page(chosen.text),)

    def _build_result(
        self,
        chosen:     Candidate,
        candidates: list[Candidate],
        pages:      tuple[PageLayout, ...],
        attempts:   tuple[ExtractionAttempt, ...],
        validated:  bool,
        options:    ExtractionOptions,
    ) -> ExtractionResult:
        metadata = chosen.extras.get("metadata") or next(
            (c.extras["metadata"] for c in candidates if c.extras.get("metadata")),
            DocumentMetadata(page_count=len(pages)),
        )
        low_quality = chosen.low_quality if isinstance(chosen, Valid) else is_low_quality(chosen.text)
        metadata = replace(metadata, low_quality=low_quality)

        tables = detect_tables(list(pages)) if options.detect_tables else []

        has_geometry = any(line.items for page in pages for line in page.lines)
        sections = detect_sections(list(pages)) if has_geometry else []
        if not sections:
            sections = detect_sections_from_text(chosen.text)

        return ExtractionResult(
            text=chosen.text,
            pages=pages,
            tables=tuple(tables),
            sections=tuple(sections),
            metadata=metadata,
            method=chosen.method,
            attempts=attempts,
            validated=validated,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _select(candidates: list[Candidate], attempt_all: bool) -> tuple[Candidate | None, bool]:
    valid = [c for c in candidates if c.is_valid]
    if valid:
        if not attempt_all:
            return valid[0], True
        return max(valid, key=lambda c: c.length), True

    non_empty = [c for c in candidates if c.text.strip()]
    if not non_empty:
        return None, False
    return max(non_empty, key=lambda c: c.length), False


def _document_kind(data: bytes, mime_type: str) -> str:
    mime = (mime_type or "").lower()
    if mime == PDF_MIME or data[:4] == b"%PDF":
        return "pdf"
    if "wordprocessingml" in mime or (not mime.startswith("text/") and data[:4] == b"PK\x03\x04"):
        return "docx"
    if mime.startswith("text/") or mime in ("", "application/octet-stream"):
        return "text"
    raise UnsupportedDocument(mime_type)


def _plain_page(text: str) -> PageLayout:
    """One synthetic page for text without coordinates (tables via spacing only)."""
    lines = tuple(
        Line(text=raw, y=i * _PLAIN_LINE_HEIGHT)
        for i, raw in enumerate(l for l in text.splitlines() if l.strip())
    )
    return PageLayout(number=1, width=0.0, height=len(lines) * _PLAIN_LINE_HEIGHT, lines=lines)
