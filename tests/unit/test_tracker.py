"""
Unit Tests — Job Tracker
════════════════════════
Tests for docsynth/jobs/tracker.py

Coverage:
  ✅ Initial pending snapshot
  ✅ Forward transitions, both generation branches
  ✅ Illegal transitions raise InvalidTransition
  ✅ Progress is clamped and never decreases
  ✅ Terminal stages ignore later updates
  ✅ Cancellation flag checked at every advance
  ✅ Concurrent updates are serialized
  ✅ A failed store write leaves the tracker state unchanged
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from docsynth.core.exceptions import InvalidTransition, JobCancelled
from docsynth.jobs.tracker import (
    JobStage,
    JobStats,
    JobStatus,
    JobTracker,
    status_for,
)


@pytest.fixture
async def tracker(job_store):
    tracker = JobTracker(job_store, job_id="job-1", document_ref="s3://bucket/doc.pdf")
    await tracker.start()
    return tracker


async def _walk_to_saving(tracker: JobTracker) -> None:
    await tracker.advance(JobStage.UPLOADING, 5)
    await tracker.advance(JobStage.EXTRACTING, 10)
    await tracker.advance(JobStage.ANALYZING_STRUCTURE, 50)
    await tracker.advance(JobStage.PROCESSING, 60)
    await tracker.advance(JobStage.SAVING, 90)


@pytest.mark.unit
class TestLifecycle:

    async def test_start_writes_pending_snapshot(self, tracker, job_store):
        snapshot = await job_store.read("job-1")

        assert snapshot["status"] == "pending"
        assert snapshot["stage"] == "pending"
        assert snapshot["progress"] == 0
        assert snapshot["document_ref"] == "s3://bucket/doc.pdf"
        assert snapshot["error"] is None
        assert set(snapshot) == {
            "job_id", "document_ref", "status", "stage", "progress", "updated_at", "error", "stats",
        }

    async def test_full_variants_path(self, tracker, job_store):
        await _walk_to_saving(tracker)
        await tracker.complete(JobStats(records=12, clauses=12))

        snapshot = await job_store.read("job-1")
        assert snapshot["status"] == "complete"
        assert snapshot["progress"] == 100
        assert snapshot["stats"]["records"] == 12
        assert tracker.is_terminal

    async def test_synthetic_branch(self, tracker):
        await tracker.advance(JobStage.UPLOADING)
        await tracker.advance(JobStage.EXTRACTING)
        await tracker.advance(JobStage.ANALYZING_STRUCTURE)
        await tracker.advance(JobStage.DATA_GENERATION, 70)
        await tracker.advance(JobStage.SAVING, 90)
        assert tracker.stage is JobStage.SAVING
        assert tracker.status is JobStatus.PROCESSING

    async def test_skipping_a_stage_is_rejected(self, tracker):
        with pytest.raises(InvalidTransition) as exc_info:
            await tracker.advance(JobStage.SAVING)
        assert exc_info.value.current == "pending"
        assert exc_info.value.target == "saving"

    async def test_complete_requires_saving(self, tracker):
        await tracker.advance(JobStage.UPLOADING)
        with pytest.raises(InvalidTransition):
            await tracker.complete()

    async def test_error_reachable_from_any_stage(self, tracker, job_store):
        await tracker.advance(JobStage.UPLOADING, 5)
        await tracker.fail("FileNotFoundError: Object not found: doc.pdf")

        snapshot = await job_store.read("job-1")
        assert snapshot["status"] == "error"
        assert snapshot["error"] == "FileNotFoundError: Object not found: doc.pdf"
        assert snapshot["progress"] == 5


@pytest.mark.unit
class TestProgress:

    async def test_progress_never_decreases(self, tracker, job_store):
        await tracker.advance(JobStage.UPLOADING, 5)
        await tracker.report_progress(30)
        await tracker.report_progress(20)
        assert tracker.progress == 30

        history = [s["progress"] for s in job_store.history["job-1"]]
        assert history == sorted(history)

    async def test_progress_is_clamped(self, tracker):
        await tracker.advance(JobStage.UPLOADING, 250)
        assert tracker.progress == 100

    async def test_stats_are_written(self, tracker, job_store):
        await tracker.advance(JobStage.UPLOADING, 5)
        await tracker.report_progress(10, JobStats(credits=3))
        assert (await job_store.read("job-1"))["stats"]["credits"] == 3


@pytest.mark.unit
class TestTerminalStages:

    async def test_updates_after_completion_are_ignored(self, tracker, job_store):
        await _walk_to_saving(tracker)
        await tracker.complete()
        writes = len(job_store.history["job-1"])

        await tracker.report_progress(10)
        await tracker.fail("late failure")
        await tracker.advance(JobStage.UPLOADING)

        assert len(job_store.history["job-1"]) == writes
        assert (await job_store.read("job-1"))["status"] == "complete"

    async def test_error_is_final(self, tracker, job_store):
        await tracker.fail("boom")
        await tracker.cancel()
        assert (await job_store.read("job-1"))["status"] == "error"


@pytest.mark.unit
class TestCancellation:

    async def test_flag_stops_next_advance(self, tracker, job_store):
        await tracker.advance(JobStage.UPLOADING, 5)
        await job_store.request_cancel("job-1")

        with pytest.raises(JobCancelled):
            await tracker.advance(JobStage.EXTRACTING, 10)

        snapshot = await job_store.read("job-1")
        assert snapshot["status"] == "cancelled"
        assert snapshot["stage"] == "cancelled"
        assert snapshot["progress"] == 5

    async def test_cancel_before_first_stage(self, tracker, job_store):
        await job_store.request_cancel("job-1")
        with pytest.raises(JobCancelled):
            await tracker.advance(JobStage.UPLOADING)
        assert tracker.status is JobStatus.CANCELLED


@pytest.mark.unit
class TestFailedWrites:

    async def test_advance_keeps_state_when_write_fails(self, tracker, job_store):
        await tracker.advance(JobStage.UPLOADING, 5)

        with patch.object(job_store, "write", AsyncMock(side_effect=OSError("db down"))):
            with pytest.raises(OSError):
                await tracker.advance(JobStage.EXTRACTING, 10)

        assert tracker.stage is JobStage.UPLOADING
        assert tracker.progress == 5
        assert (await job_store.read("job-1"))["stage"] == "uploading"

    async def test_progress_and_stats_kept_when_write_fails(self, tracker, job_store):
        await tracker.advance(JobStage.UPLOADING, 5)

        with patch.object(job_store, "write", AsyncMock(side_effect=OSError("db down"))):
            with pytest.raises(OSError):
                await tracker.report_progress(30, JobStats(credits=9))

        assert tracker.progress == 5
        assert tracker.stats.credits == 0

        # A later successful write still works from the stored state
        await tracker.advance(JobStage.EXTRACTING, 10)
        assert (await job_store.read("job-1"))["progress"] == 10


@pytest.mark.unit
class TestConcurrency:

    async def test_concurrent_updates_write_one_snapshot_each(self, tracker, job_store):
        await tracker.advance(JobStage.UPLOADING, 5)
        await asyncio.gather(*(tracker.report_progress(p) for p in range(10, 60, 5)))

        history = job_store.history["job-1"]
        assert len(history) == 2 + 10
        assert history[-1]["progress"] == 55


@pytest.mark.unit
@pytest.mark.parametrize("stage,status", [
    (JobStage.PENDING,    JobStatus.PENDING),
    (JobStage.EXTRACTING, JobStatus.PROCESSING),
    (JobStage.SAVING,     JobStatus.PROCESSING),
    (JobStage.COMPLETE,   JobStatus.COMPLETE),
    (JobStage.CANCELLED,  JobStatus.CANCELLED),
])
def test_status_for(stage, status):
    assert status_for(stage) is status
