"""
Celery Tasks — Dataset Generation

Task: generate_dataset
  Builds a DocumentPipeline from the production adapters
  (S3 → extraction → Textract OCR → ChatOpenAI rewrites → PostgreSQL job
  snapshots) and runs one job to completion. The whole job is never
  retried: I/O retries happen inside the pipeline, and a failed job ends in
  status=error with the reason in its snapshot.

Task: health_check
  Worker liveness plus a database ping.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from celery import Task
from celery.signals import worker_process_init

from docsynth.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Async task helper
# Run async coroutines inside Celery's synchronous task context.
# ---------------------------------------------------------------------------

def run_async(coro):
    """Execute an async coroutine from a synchronous Celery task."""
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    import concurrent.futures
    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(asyncio.run, coro).result()


# ---------------------------------------------------------------------------
# Worker startup
# ---------------------------------------------------------------------------

@worker_process_init.connect
def ensure_tables(**kwargs) -> None:
    """Create processing_jobs on first boot; a DB outage is logged, not fatal."""
    from docsynth.db.session import create_tables

    try:
        run_async(create_tables())
    except Exception as exc:
        logger.error("Could not ensure job tables | error=%s", exc)


# ---------------------------------------------------------------------------
# Dataset generation
# ---------------------------------------------------------------------------

@celery_app.task(
    name="docsynth.workers.tasks.generate_dataset",
    bind=True,
    acks_late=True,
    reject_on_worker_lost=True,
    soft_time_limit=1800,
    time_limit=1900,
)
def generate_dataset(
    self: Task,
    *,
    job_id:       str,
    document_ref: str,
    mime_type:    str = "application/pdf",
    options:      dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Run one generation job; the payload carries only references."""
    return run_async(
        _generate_dataset_async(
            job_id=job_id,
            document_ref=document_ref,
            mime_type=mime_type,
            options=options or {},
        )
    )


async def _generate_dataset_async(
    job_id:       str,
    document_ref: str,
    mime_type:    str,
    options:      dict[str, Any],
) -> dict[str, Any]:
    from docsynth.db.session import get_session_factory
    from docsynth.jobs.pipeline import DocumentPipeline, PipelineOptions
    from docsynth.jobs.stores import SqlAlchemyJobStore
    from docsynth.llm.client import ChatRewriteClient
    from docsynth.ocr.textract import TextractOcrEngine
    from docsynth.storage.s3 import S3ObjectStore

    pipeline = DocumentPipeline(
        object_store=S3ObjectStore(),
        job_store=SqlAlchemyJobStore(get_session_factory()),
        llm_client=ChatRewriteClient(),
        ocr_engine=TextractOcrEngine(),
    )

    try:
        result = await pipeline.run(
            document_ref,
            mime_type,
            PipelineOptions.from_settings(**options),
            job_id=job_id,
        )
    except Exception as exc:
        # The job snapshot already says error; report it without re-queuing
        logger.error("Generation failed | job=%s error=%s", job_id, exc)
        return {"status": "error", "job_id": job_id, "error": str(exc)}

    if result is None:
        return {"status": "cancelled", "job_id": job_id}

    return {
        "status":            "complete",
        "job_id":            job_id,
        "mode":              result.mode.value,
        "records":           len(result.records),
        "content_type":      result.content_type,
        "extraction_method": result.extraction_method,
        "stats":             result.stats.to_dict(),
        "output":            result.output,
    }


# ---------------------------------------------------------------------------
# Health check task
# ---------------------------------------------------------------------------

@celery_app.task(name="docsynth.workers.tasks.health_check")
def health_check() -> dict[str, Any]:
    from docsynth.db.session import check_db_health

    return {"status": "ok", "worker": "healthy", "database": run_async(check_db_health())}


# ---------------------------------------------------------------------------
# Task publisher: thin wrapper over Celery .apply_async()
# ---------------------------------------------------------------------------

class TaskPublisher:
    """
    Creates the job record, then hands the job to a worker.

    The pending snapshot is written before the broker call, so the returned
    job id is pollable immediately even if the worker is slow to start.
    """

    def __init__(self, job_store) -> None:
        self._job_store = job_store

    async def publish(
        self,
        document_ref: str,
        mime_type:    str = "application/pdf",
        options:      dict[str, Any] | None = None,
        job_id:       str | None = None,
    ) -> str:
        from docsynth.jobs.tracker import JobTracker

        tracker = JobTracker(self._job_store, job_id=job_id, document_ref=document_ref)
        await tracker.start()

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None,
            lambda: generate_dataset.apply_async(
                kwargs={
                    "job_id":       tracker.job_id,
                    "document_ref": document_ref,
                    "mime_type":    mime_type,
                    "options":      options or {},
                },
            ),
        )
        logger.info("Generation task published | job=%s doc=%s", tracker.job_id, document_ref)
        return tracker.job_id
