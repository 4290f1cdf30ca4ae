"""
Document Pipeline  —  Job-Tracked Ingestion and Dataset Generation
══════════════════════════════════════════════════════════════════

Stages (progress written after each):

  uploading            5   read the source bytes from the ObjectStore
  extracting       10→40   ExtractionCoordinator, complexity / credit estimate
  analyzing_structure
                   50→60   variants:  chunk the text
                             synthetic: FieldAnalyzer over the whole document
  processing       60→85   variants:  VariantGenerator per chunk via BatchProcessor
  data_generation     70   synthetic: SyntheticRecordGenerator
  saving              90   serialize; optionally delete the source object
  complete           100

Failure policy:
  - cancellation requested   → status=cancelled, run() returns None
  - per-chunk failure        → chunk skipped, counted in stats.failed
  - per-sentence LLM failure → local rewrite, counted in stats.fallbacks
  - anything else            → status=error with the message, re-raised

All collaborators are injected; the pipeline owns no module-level clients.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from docsynth.core.config import Settings, get_settings
from docsynth.core.exceptions import JobCancelled
from docsynth.generation.fields import Field, FieldAnalyzer
from docsynth.generation.formats import OutputFormat, serialize_records, serialize_variants
from docsynth.generation.quality import QualityControl
from docsynth.generation.synthetic import SyntheticRecordGenerator
from docsynth.generation.variants import VariantGenerator, VariantRecord, parse_class_filter
from docsynth.interfaces import JobStore, LanguageModelClient, ObjectStore, OcrEngine
from docsynth.jobs.retry import retry_async
from docsynth.jobs.tracker import JobStage, JobStats, JobTracker
from docsynth.processing.batch import BatchProcessor, BatchProgress
from docsynth.processing.chunking import Chunk, TextChunker, estimate_complexity
from docsynth.processing.extractor import (
    PDF_MIME,
    ExtractionCoordinator,
    ExtractionOptions,
    ExtractionResult,
)

logger = logging.getLogger(__name__)

# Progress anchors
PROGRESS_UPLOADING      = 5
PROGRESS_EXTRACT_START  = 10
PROGRESS_EXTRACT_DONE   = 40
PROGRESS_ANALYZE_START  = 50
PROGRESS_ANALYZE_DONE   = 60
PROGRESS_VARIANTS_START = 60
PROGRESS_VARIANTS_END   = 85
PROGRESS_GENERATION     = 70
PROGRESS_SAVING         = 90


class PipelineMode(str, Enum):
    VARIANTS  = "variants"
    SYNTHETIC = "synthetic"


@dataclass(frozen=True)
class PipelineOptions:
    chunk_size:          int  = 1000
    overlap_size:        int  = 100
    output_format:       str  = OutputFormat.OPENAI.value
    record_count:        int  = 10
    use_ocr:             bool = False
    detect_tables:       bool = True
    attempt_all_methods: bool = False
    mode:                str  = PipelineMode.VARIANTS.value
    class_filter:        str  = "all"
    delete_source:       bool = False

    def __post_init__(self) -> None:
        if self.overlap_size >= self.chunk_size:
            raise ValueError(
                f"overlap_size ({self.overlap_size}) must be smaller than chunk_size ({self.chunk_size})"
            )
        mode = PipelineMode(self.mode)
        fmt  = OutputFormat(self.output_format)
        if fmt is OutputFormat.CSV and mode is PipelineMode.SYNTHETIC:
            raise ValueError("CSV output is only available for variant datasets")
        parse_class_filter(self.class_filter)

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **overrides: Any) -> "PipelineOptions":
        settings = settings or get_settings()
        defaults = {
            "chunk_size":   settings.chunk_size,
            "overlap_size": settings.overlap_size,
            "record_count": settings.record_count,
        }
        return cls(**{**defaults, **overrides})

    def to_dict(self) -> dict[str, Any]:
        return dict(self.__dict__)


@dataclass(frozen=True)
class PipelineResult:
    job_id:            str
    mode:              PipelineMode
    records:           list[Any]
    output:            str
    content_type:      str
    stats:             JobStats
    extraction_method: str
    fields:            list[Field] = field(default_factory=list)


class DocumentPipeline:
    """
    Usage:
        pipeline = DocumentPipeline(
            object_store=S3ObjectStore(),
            job_store=SqlAlchemyJobStore(get_session_factory()),
            llm_client=ChatRewriteClient(),
            ocr_engine=TextractOcrEngine(),
        )
        job_id = await pipeline.submit("s3://bucket/doc.pdf", "application/pdf")
        ...
        snapshot = await pipeline.status(job_id)
    """

    def __init__(
        self,
        object_store: ObjectStore,
        job_store:    JobStore,
        llm_client:   LanguageModelClient | None = None,
        ocr_engine:   OcrEngine | None = None,
        *,
        settings: Settings | None = None,
        rng:      random.Random | None = None,
    ) -> None:
        self._settings     = settings or get_settings()
        self._object_store = object_store
        self._job_store    = job_store
        self._llm_client   = llm_client
        self._rng          = rng
        self._extractor    = ExtractionCoordinator(
            ocr_engine=ocr_engine,
            ocr_max_workers=self._settings.ocr_max_workers,
            ocr_scale=self._settings.ocr_scale,
        )
        self._background: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def run(
        self,
        document_ref: str,
        mime_type:    str = PDF_MIME,
        options:      PipelineOptions | None = None,
        job_id:       str | None = None,
    ) -> PipelineResult | None:
        """Run a job to completion. Returns None if the job was cancelled."""
        tracker = JobTracker(self._job_store, job_id=job_id, document_ref=document_ref)
        await tracker.start()
        return await self._execute(tracker, mime_type, options or PipelineOptions())

    async def submit(
        self,
        document_ref: str,
        mime_type:    str = PDF_MIME,
        options:      PipelineOptions | None = None,
        job_id:       str | None = None,
    ) -> str:
        """
        Schedule the job on the running loop and return its id at once.
        The pending snapshot is written before this returns, so a poller
        never sees an unknown job id.
        """
        tracker = JobTracker(
            self._job_store, job_id=job_id or str(uuid.uuid4()), document_ref=document_ref,
        )
        await tracker.start()

        task = asyncio.create_task(
            self._execute_detached(tracker, mime_type, options or PipelineOptions()),
            name=f"docsynth-job-{tracker.job_id}",
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        logger.info("Job submitted | job=%s doc=%s", tracker.job_id, document_ref)
        return tracker.job_id

    async def cancel(self, job_id: str) -> None:
        """Request cooperative cancellation; honoured at the next stage boundary."""
        await self._job_store.request_cancel(job_id)

    async def status(self, job_id: str) -> dict[str, Any] | None:
        return await self._job_store.read(job_id)

    async def wait(self) -> None:
        """Wait for all submitted jobs (tests and graceful shutdown)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------
    # Job body
    # ------------------------------------------------------------------

    async def _execute_detached(
        self,
        tracker:   JobTracker,
        mime_type: str,
        options:   PipelineOptions,
    ) -> None:
        try:
            await self._execute(tracker, mime_type, options)
        except Exception:
            # Already recorded as status=error by _execute; nobody awaits this task
            logger.debug("Detached job ended with error | job=%s", tracker.job_id)

    async def _execute(
        self,
        tracker:   JobTracker,
        mime_type: str,
        options:   PipelineOptions,
    ) -> PipelineResult | None:
        t0 = time.monotonic()
        mode = PipelineMode(options.mode)
        logger.info(
            "Job start | job=%s doc=%s mode=%s format=%s",
            tracker.job_id, tracker.document_ref, mode.value, options.output_format,
        )

        try:
            # --- Phase 1: Read source bytes -------------------------------
            await tracker.advance(JobStage.UPLOADING, PROGRESS_UPLOADING)
            data = await self._retry(
                lambda: self._object_store.read(tracker.document_ref), "object_store.read",
            )

            # --- Phase 2: Extraction --------------------------------------
            await tracker.advance(JobStage.EXTRACTING, PROGRESS_EXTRACT_START)
            extraction = await self._extractor.extract(
                data,
                mime_type,
                ExtractionOptions(
                    use_ocr=options.use_ocr,
                    attempt_all_methods=options.attempt_all_methods,
                    detect_tables=options.detect_tables,
                ),
            )
            stats = JobStats(credits=estimate_complexity(extraction.text).estimated_credits)
            await tracker.report_progress(PROGRESS_EXTRACT_DONE, stats)

            # --- Phase 3 + 4: Analysis and generation ---------------------
            await tracker.advance(JobStage.ANALYZING_STRUCTURE, PROGRESS_ANALYZE_START)
            if mode is PipelineMode.VARIANTS:
                records, fields = await self._variants(tracker, extraction, options, stats), []
            else:
                records, fields = await self._synthetic(tracker, extraction, options, stats)

            # --- Phase 5: Saving ------------------------------------------
            await tracker.advance(JobStage.SAVING, PROGRESS_SAVING)
            if mode is PipelineMode.VARIANTS:
                output, content_type = serialize_variants(records, options.output_format)
            else:
                output, content_type = serialize_records(records)

            if options.delete_source:
                await self._delete_source(tracker.document_ref)

            await tracker.complete(stats)

        except JobCancelled:
            logger.info("Job stopped on cancellation | job=%s", tracker.job_id)
            return None
        except Exception as exc:
            logger.exception("Job failed | job=%s", tracker.job_id)
            await tracker.fail(f"{type(exc).__name__}: {exc}")
            raise

        logger.info(
            "Job done | job=%s mode=%s records=%d method=%s elapsed_ms=%.0f",
            tracker.job_id, mode.value, len(records), extraction.method,
            (time.monotonic() - t0) * 1000,
        )
        return PipelineResult(
            job_id=tracker.job_id,
            mode=mode,
            records=records,
            output=output,
            content_type=content_type,
            stats=stats,
            extraction_method=extraction.method,
            fields=fields,
        )

    async def _variants(
        self,
        tracker:    JobTracker,
        extraction: ExtractionResult,
        options:    PipelineOptions,
        stats:      JobStats,
    ) -> list[VariantRecord]:
        chunker = TextChunker(chunk_size=options.chunk_size, overlap_size=options.overlap_size)
        chunks  = chunker.chunk_list(extraction.text)
        stats.chunks_total = len(chunks)
        await tracker.report_progress(PROGRESS_ANALYZE_DONE, stats)

        await tracker.advance(JobStage.PROCESSING, PROGRESS_VARIANTS_START)
        generator = VariantGenerator(
            self._llm_client,
            rng=self._rng,
            class_filter=options.class_filter,
            quality=QualityControl(),
            rewrite_attempts=self._settings.retry_attempts,
            retry_delay=self._settings.retry_base_delay,
        )

        async def _on_progress(progress: BatchProgress) -> None:
            stats.chunks_processed = progress.processed
            stats.failed = progress.failed
            span = PROGRESS_VARIANTS_END - PROGRESS_VARIANTS_START
            await tracker.report_progress(
                PROGRESS_VARIANTS_START + span * progress.processed / max(1, progress.total),
                stats,
            )

        def _on_error(exc: Exception, chunk: Chunk) -> None:
            logger.warning("Chunk skipped | job=%s chunk=%d error=%s", tracker.job_id, chunk.index, exc)

        processor = BatchProcessor(
            batch_size=self._settings.batch_size,
            max_concurrent_batches=self._settings.max_concurrent_batches,
            on_progress=_on_progress,
            on_error=_on_error,
        )
        outcome = await processor.run(chunks, lambda chunk: generator.generate(chunk.text))

        records = [record for chunk_records in outcome.results for record in chunk_records]
        stats.clauses   = len(records)
        stats.records   = len(records)
        stats.fallbacks = sum(1 for r in records if r.used_fallback)
        return records

    async def _synthetic(
        self,
        tracker:    JobTracker,
        extraction: ExtractionResult,
        options:    PipelineOptions,
        stats:      JobStats,
    ) -> tuple[list[dict[str, Any]], list[Field]]:
        fields = FieldAnalyzer().analyze(extraction)
        await tracker.report_progress(PROGRESS_ANALYZE_DONE, stats)

        await tracker.advance(JobStage.DATA_GENERATION, PROGRESS_GENERATION)
        records = SyntheticRecordGenerator(rng=self._rng).generate(
            fields, extraction, options.record_count,
        )
        stats.records = len(records)
        return records, fields

    # ------------------------------------------------------------------
    # I/O helpers
    # ------------------------------------------------------------------

    async def _retry(self, fn, label: str):
        return await retry_async(
            fn,
            attempts=self._settings.retry_attempts,
            base_delay=self._settings.retry_base_delay,
            max_delay=self._settings.retry_max_delay,
            label=label,
        )

    async def _delete_source(self, document_ref: str) -> None:
        try:
            await self._retry(lambda: self._object_store.delete(document_ref), "object_store.delete")
        except Exception as exc:
            logger.warning("Source delete failed, continuing | doc=%s error=%s", document_ref, exc)
