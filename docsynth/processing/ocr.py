"""
Extraction Strategies  —  Text from Document Bytes
═══════════════════════════════════════════════════

Design: Strategy + tagged results
─────────────────────────────────
Each strategy turns raw bytes into one *candidate* and tags it with
processing.validation (Valid | Invalid). Strategies do not raise for
expected failures: a broken file, an empty text layer or an OCR outage all
come back as Invalid(reason=...) so the coordinator can pick among
candidates instead of unwinding through exception handlers.

  Strategy 1: Text layer (pypdf)
    - Native PDF text layer, no rendering, no API calls
    - Also yields document metadata (page count, producer, encryption)
    - Content-stream order: multi-column pages come out interleaved

  Strategy 2: Layout (PyMuPDF)
    - Positioned spans → lines → reading order (processing.layout)
    - Supplies the page geometry used for table / section detection

  Strategy 3: OCR (PyMuPDF rasterization + OcrEngine collaborator)
    - Renders each page at OCR scale and sends PNG bytes to the engine
    - At most `max_workers` pages are rendered / recognized at once to cap
      memory (rendered pages are the largest objects in the pipeline)
    - Not deterministic across engine versions

  Non-PDF inputs: plain text (decode) and DOCX (python-docx).

Blocking parsers run in the default thread executor so the event loop
keeps serving other jobs while a large document is parsed.
"""

from __future__ import annotations

import asyncio
import io
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from docsynth.interfaces import OcrEngine
from docsynth.processing.layout import PageLayout, TextFragment, group_lines
from docsynth.processing.validation import Candidate, Invalid, validate_candidate

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_OCR_WORKERS = 2
DEFAULT_OCR_SCALE   = 2.0


# ---------------------------------------------------------------------------
# Shared data types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DocumentMetadata:
    """
    page_count  : number of pages (1 for non-paginated inputs)
    producer    : PDF /Producer entry, "" when absent
    encrypted   : True if the PDF declares encryption
    low_quality : text shows OCR-noise symptoms (see validation.is_low_quality)
    """
    page_count:  int  = 0
    producer:    str  = ""
    encrypted:   bool = False
    low_quality: bool = False


# ---------------------------------------------------------------------------
# Abstract strategy
# ---------------------------------------------------------------------------

class BaseExtractionStrategy(ABC):
    """
    Abstract base for text extraction strategies.

    All implementations:
      - Accept raw bytes (never a file path, keeps workers stateless)
      - Return a tagged Candidate
      - Handle their own errors internally (log + return Invalid)
      - Are safe for concurrent use (no shared mutable state)
    """

    @property
    @abstractmethod
    def strategy_name(self) -> str:
        """Unique name for logging and diagnostics."""

    async def extract(self, data: bytes) -> Candidate:
        loop = asyncio.get_running_loop()
        t0 = time.monotonic()

        try:
            candidate = await self._extract(data, loop)
        except Exception as exc:
            logger.warning("%s extraction failed: %s", self.strategy_name, exc)
            candidate = Invalid(method=self.strategy_name, reason=f"error: {exc}")

        logger.info(
            "%s | valid=%s chars=%d reason=%s elapsed_ms=%.0f",
            self.strategy_name, candidate.is_valid, candidate.length,
            getattr(candidate, "reason", "ok"), (time.monotonic() - t0) * 1000,
        )
        return candidate

    @abstractmethod
    async def _extract(self, data: bytes, loop: asyncio.AbstractEventLoop) -> Candidate:
        """Strategy body; may raise, extract() converts errors to Invalid."""


# ---------------------------------------------------------------------------
# Strategy 1: pypdf text layer
# ---------------------------------------------------------------------------

class TextLayerStrategy(BaseExtractionStrategy):
    """Direct text-layer parse with pypdf."""

    @property
    def strategy_name(self) -> str:
        return "text_layer"

    async def _extract(self, data: bytes, loop: asyncio.AbstractEventLoop) -> Candidate:
        text, metadata = await loop.run_in_executor(None, self._extract_sync, data)
        return validate_candidate(self.strategy_name, text, metadata=metadata)

    @staticmethod
    def _extract_sync(data: bytes) -> tuple[str, DocumentMetadata]:
        from pypdf import PdfReader

        reader = PdfReader(io.BytesIO(data))
        encrypted = reader.is_encrypted
        if encrypted:
            # Owner-password-only PDFs open with an empty user password
            reader.decrypt("")

        pages = [page.extract_text() or "" for page in reader.pages]
        info = reader.metadata
        metadata = DocumentMetadata(
            page_count=len(reader.pages),
            producer=str(info.producer or "") if info else "",
            encrypted=encrypted,
        )
        text = "\n\n".join(p.strip() for p in pages if p.strip())
        return text, metadata


# ---------------------------------------------------------------------------
# Strategy 2: PyMuPDF position-aware layout
# ---------------------------------------------------------------------------

class LayoutStrategy(BaseExtractionStrategy):
    """
    Reading-order reconstruction from positioned spans.

    PyMuPDF's "dict" mode returns blocks → lines → spans with an `origin`
    (baseline x, y). Every span becomes a TextFragment; layout.group_lines
    rebuilds lines from them.
    """

    @property
    def strategy_name(self) -> str:
        return "layout"

    async def _extract(self, data: bytes, loop: asyncio.AbstractEventLoop) -> Candidate:
        pages, metadata = await loop.run_in_executor(None, self._extract_sync, data)
        text = "\n\n".join(p.text for p in pages if p.text.strip())
        return validate_candidate(self.strategy_name, text, pages=pages, metadata=metadata)

    @staticmethod
    def _extract_sync(data: bytes) -> tuple[list[PageLayout], DocumentMetadata]:
        import fitz  # PyMuPDF; imported here to avoid module-level import cost

        pages: list[PageLayout] = []
        with fitz.open(stream=data, filetype="pdf") as doc:
            for page_num, page in enumerate(doc, start=1):
                fragments: list[TextFragment] = []
                for block in page.get_text("dict").get("blocks", []):
                    if block.get("type", 0) != 0:
                        continue   # image block
                    for line in block.get("lines", []):
                        for span in line.get("spans", []):
                            if not span.get("text", "").strip():
                                continue
                            x, y = span["origin"]
                            x0, _, x1, _ = span["bbox"]
                            fragments.append(TextFragment(
                                text=span["text"], x=x, y=y, width=x1 - x0,
                            ))
                pages.append(PageLayout(
                    number=page_num,
                    width=page.rect.width,
                    height=page.rect.height,
                    lines=tuple(group_lines(fragments)),
                ))

            metadata = DocumentMetadata(
                page_count=doc.page_count,
                producer=(doc.metadata or {}).get("producer") or "",
                encrypted=bool(doc.is_encrypted or doc.needs_pass),
            )
        return pages, metadata


# ---------------------------------------------------------------------------
# Strategy 3: OCR via rasterization
# ---------------------------------------------------------------------------

class OcrStrategy(BaseExtractionStrategy):
    """
    Rasterize pages with PyMuPDF and recognize them with an OcrEngine.

    A page whose recognition fails contributes empty text; the candidate
    is Invalid only when no page produced anything.
    """

    def __init__(
        self,
        engine:      OcrEngine,
        max_workers: int   = DEFAULT_OCR_WORKERS,
        scale:       float = DEFAULT_OCR_SCALE,
    ) -> None:
        self._engine      = engine
        self._max_workers = max(1, max_workers)
        self._scale       = scale

    @property
    def strategy_name(self) -> str:
        return "ocr"

    async def _extract(self, data: bytes, loop: asyncio.AbstractEventLoop) -> Candidate:
        page_count = await loop.run_in_executor(None, self._page_count, data)
        semaphore  = asyncio.Semaphore(self._max_workers)
        errors: list[str] = []

        async def _recognize(index: int) -> str:
            async with semaphore:
                try:
                    image = await loop.run_in_executor(None, self._render_page, data, index)
                    return (await self._engine.recognize(image)) or ""
                except Exception as exc:
                    logger.warning("OCR page failed | page=%d error=%s", index + 1, exc)
                    errors.append(f"page {index + 1}: {exc}")
                    return ""

        texts = await asyncio.gather(*(_recognize(i) for i in range(page_count)))
        text  = "\n\n".join(t.strip() for t in texts if t.strip())

        if not text and errors:
            return Invalid(
                method=self.strategy_name,
                reason=f"ocr_unavailable: {errors[0]}",
            )
        return validate_candidate(
            self.strategy_name, text,
            metadata=DocumentMetadata(page_count=page_count),
        )

    @staticmethod
    def _page_count(data: bytes) -> int:
        import fitz

        with fitz.open(stream=data, filetype="pdf") as doc:
            return doc.page_count

    def _render_page(self, data: bytes, index: int) -> bytes:
        """Render one page to PNG bytes (blocking)."""
        import fitz

        with fitz.open(stream=data, filetype="pdf") as doc:
            pix = doc[index].get_pixmap(matrix=fitz.Matrix(self._scale, self._scale))
            return pix.tobytes("png")


# ---------------------------------------------------------------------------
# Non-PDF inputs
# ---------------------------------------------------------------------------

class PlainTextStrategy(BaseExtractionStrategy):
    """Plain text / markdown: decode with UTF-8, fallback to latin-1."""

    @property
    def strategy_name(self) -> str:
        return "plain_text"

    async def _extract(self, data: bytes, loop: asyncio.AbstractEventLoop) -> Candidate:
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            text = data.decode("latin-1", errors="replace")
        return validate_candidate(
            self.strategy_name, text, metadata=DocumentMetadata(page_count=1),
        )


class DocxStrategy(BaseExtractionStrategy):
    """DOCX paragraphs via python-docx."""

    @property
    def strategy_name(self) -> str:
        return "docx"

    async def _extract(self, data: bytes, loop: asyncio.AbstractEventLoop) -> Candidate:
        text = await loop.run_in_executor(None, self._extract_sync, data)
        return validate_candidate(
            self.strategy_name, text, metadata=DocumentMetadata(page_count=1),
        )

    @staticmethod
    def _extract_sync(data: bytes) -> str:
        import docx

        document = docx.Document(io.BytesIO(data))
        return "\n\n".join(p.text for p in document.paragraphs if p.text.strip())
