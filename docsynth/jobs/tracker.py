"""
Job Tracker  —  Stage / Progress State Machine
══════════════════════════════════════════════

Stages
──────
  pending → uploading → extracting → analyzing_structure
          → data_generation | processing → saving → complete

  error and cancelled are reachable from every non-terminal stage.
  complete, error and cancelled are terminal: later updates are ignored.

Snapshots
─────────
  Every change writes the full snapshot
    {job_id, document_ref, status, stage, progress, updated_at, error, stats}
  through JobStore.write while holding the tracker's lock, so two updates to
  the same job never interleave. The tracker adopts the new state only after
  the write succeeded, so it never runs ahead of the stored snapshot.

Progress
────────
  Clamped to 0–100. While the job is processing a lower value is raised to
  the current one, so polled snapshots never go backwards.

Cancellation
────────────
  advance() consults JobStore.is_cancelled before every stage change. A set
  flag writes status=cancelled and raises JobCancelled; in-flight work of
  the previous stage is never interrupted.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from docsynth.core.exceptions import InvalidTransition, JobCancelled
from docsynth.interfaces import JobStore

logger = logging.getLogger(__name__)


class JobStage(str, Enum):
    PENDING             = "pending"
    UPLOADING           = "uploading"
    EXTRACTING          = "extracting"
    ANALYZING_STRUCTURE = "analyzing_structure"
    DATA_GENERATION     = "data_generation"
    PROCESSING          = "processing"
    SAVING              = "saving"
    COMPLETE            = "complete"
    ERROR               = "error"
    CANCELLED           = "cancelled"


class JobStatus(str, Enum):
    PENDING    = "pending"
    PROCESSING = "processing"
    COMPLETE   = "complete"
    ERROR      = "error"
    CANCELLED  = "cancelled"


TERMINAL_STAGES = frozenset({JobStage.COMPLETE, JobStage.ERROR, JobStage.CANCELLED})

_FORWARD: dict[JobStage, frozenset[JobStage]] = {
    JobStage.PENDING:             frozenset({JobStage.UPLOADING}),
    JobStage.UPLOADING:           frozenset({JobStage.EXTRACTING}),
    JobStage.EXTRACTING:          frozenset({JobStage.ANALYZING_STRUCTURE}),
    JobStage.ANALYZING_STRUCTURE: frozenset({JobStage.DATA_GENERATION, JobStage.PROCESSING}),
    JobStage.DATA_GENERATION:     frozenset({JobStage.SAVING}),
    JobStage.PROCESSING:          frozenset({JobStage.SAVING}),
    JobStage.SAVING:              frozenset({JobStage.COMPLETE}),
}

ALLOWED_TRANSITIONS: dict[JobStage, frozenset[JobStage]] = {
    stage: targets | {JobStage.ERROR, JobStage.CANCELLED}
    for stage, targets in _FORWARD.items()
}


def status_for(stage: JobStage) -> JobStatus:
    if stage is JobStage.PENDING:
        return JobStatus.PENDING
    if stage in TERMINAL_STAGES:
        return JobStatus(stage.value)
    return JobStatus.PROCESSING


@dataclass
class JobStats:
    chunks_processed: int = 0
    chunks_total:     int = 0
    clauses:          int = 0
    failed:           int = 0
    records:          int = 0
    credits:          int = 0
    fallbacks:        int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class JobSnapshot:
    job_id:       str
    document_ref: str
    status:       JobStatus
    stage:        JobStage
    progress:     int
    updated_at:   str
    error:        str | None = None
    stats:        dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id":       self.job_id,
            "document_ref": self.document_ref,
            "status":       self.status.value,
            "stage":        self.stage.value,
            "progress":     self.progress,
            "updated_at":   self.updated_at,
            "error":        self.error,
            "stats":        dict(self.stats),
        }


def _clamp(progress: int | float) -> int:
    return max(0, min(100, int(progress)))


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class JobTracker:
    """
    One tracker per job run; the JobStore is the only place state leaves it.

    Usage:
        tracker = JobTracker(store, document_ref="s3://bucket/doc.pdf")
        await tracker.start()
        await tracker.advance(JobStage.UPLOADING, 5)
        ...
        await tracker.complete(stats)
    """

    def __init__(
        self,
        store:        JobStore,
        job_id:       str | None = None,
        document_ref: str = "",
    ) -> None:
        self._store        = store
        self.job_id        = job_id or str(uuid.uuid4())
        self.document_ref  = document_ref
        self._stage        = JobStage.PENDING
        self._progress     = 0
        self._error: str | None = None
        self._stats        = JobStats()
        self._lock         = asyncio.Lock()

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    @property
    def stage(self) -> JobStage:
        return self._stage

    @property
    def status(self) -> JobStatus:
        return status_for(self._stage)

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def stats(self) -> JobStats:
        return self._stats

    @property
    def is_terminal(self) -> bool:
        return self._stage in TERMINAL_STAGES

    def snapshot(self) -> JobSnapshot:
        return self._build_snapshot(self._stage, self._progress, self._error, self._stats)

    def _build_snapshot(
        self,
        stage:    JobStage,
        progress: int,
        error:    str | None,
        stats:    JobStats,
    ) -> JobSnapshot:
        return JobSnapshot(
            job_id=self.job_id,
            document_ref=self.document_ref,
            status=status_for(stage),
            stage=stage,
            progress=progress,
            updated_at=_utcnow(),
            error=error,
            stats=stats.to_dict(),
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Write the initial pending snapshot."""
        async with self._lock:
            await self._commit()

    async def advance(self, stage: JobStage, progress: int | None = None) -> None:
        """
        Move to `stage`. Raises JobCancelled if cancellation was requested,
        InvalidTransition if the move is not allowed.
        """
        if self.is_terminal:
            logger.debug("Job terminal, ignoring advance | job=%s stage=%s", self.job_id, stage)
            return

        if await self._store.is_cancelled(self.job_id):
            await self.cancel()
            raise JobCancelled(self.job_id)

        async with self._lock:
            if self.is_terminal:
                return
            if stage not in ALLOWED_TRANSITIONS[self._stage]:
                raise InvalidTransition(self.job_id, self._stage.value, stage.value)
            await self._commit(
                stage=stage,
                progress=None if progress is None else max(self._progress, _clamp(progress)),
            )

        logger.info(
            "Job stage | job=%s stage=%s progress=%d",
            self.job_id, stage.value, self._progress,
        )

    async def report_progress(self, progress: int | float, stats: JobStats | None = None) -> None:
        """Progress within the current stage; never lowers the value."""
        async with self._lock:
            if self.is_terminal:
                return
            await self._commit(progress=max(self._progress, _clamp(progress)), stats=stats)

    async def complete(self, stats: JobStats | None = None) -> None:
        async with self._lock:
            if self.is_terminal:
                return
            if JobStage.COMPLETE not in ALLOWED_TRANSITIONS[self._stage]:
                raise InvalidTransition(self.job_id, self._stage.value, JobStage.COMPLETE.value)
            await self._commit(stage=JobStage.COMPLETE, progress=100, stats=stats)
        logger.info("Job complete | job=%s stats=%s", self.job_id, self._stats.to_dict())

    async def fail(self, message: str) -> None:
        async with self._lock:
            if self.is_terminal:
                return
            await self._commit(stage=JobStage.ERROR, error=message)
        logger.error("Job failed | job=%s error=%s", self.job_id, message)

    async def cancel(self) -> None:
        async with self._lock:
            if self.is_terminal:
                return
            await self._commit(stage=JobStage.CANCELLED)
        logger.info("Job cancelled | job=%s progress=%d", self.job_id, self._progress)

    # ------------------------------------------------------------------

    async def _commit(
        self,
        *,
        stage:    JobStage | None = None,
        progress: int | None = None,
        error:    str | None = None,
        stats:    JobStats | None = None,
    ) -> None:
        """Write the new state, then adopt it; a failed write leaves the tracker unchanged."""
        stage    = stage if stage is not None else self._stage
        progress = progress if progress is not None else self._progress
        error    = error if error is not None else self._error
        stats    = stats if stats is not None else self._stats

        snapshot = self._build_snapshot(stage, progress, error, stats)
        await self._store.write(self.job_id, snapshot.to_dict())

        self._stage, self._progress, self._error, self._stats = stage, progress, error, stats
