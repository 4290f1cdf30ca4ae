"""
Unit Tests — Job Stores
═══════════════════════
Tests for docsynth/jobs/stores.py

SqlAlchemyJobStore runs against the mocked AsyncSession from conftest.py;
no PostgreSQL is needed.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from docsynth.db.models import ProcessingJob
from docsynth.interfaces import JobStore
from docsynth.jobs.stores import InMemoryJobStore, SqlAlchemyJobStore


def _snapshot(**overrides) -> dict:
    snapshot = {
        "job_id":       "job-1",
        "document_ref": "s3://bucket/doc.pdf",
        "status":       "processing",
        "stage":        "extracting",
        "progress":     10,
        "updated_at":   "2024-05-01T12:00:00+00:00",
        "error":        None,
        "stats":        {"records": 0},
    }
    snapshot.update(overrides)
    return snapshot


@pytest.mark.unit
class TestInMemoryJobStore:

    def test_satisfies_protocol(self):
        assert isinstance(InMemoryJobStore(), JobStore)

    async def test_read_returns_a_copy(self):
        store = InMemoryJobStore()
        await store.write("job-1", _snapshot())

        snapshot = await store.read("job-1")
        snapshot["stats"]["records"] = 99

        assert (await store.read("job-1"))["stats"]["records"] == 0

    async def test_unknown_job(self):
        store = InMemoryJobStore()
        assert await store.read("nope") is None
        assert await store.is_cancelled("nope") is False

    async def test_history_and_cancel_flag(self):
        store = InMemoryJobStore()
        await store.write("job-1", _snapshot(progress=10))
        await store.write("job-1", _snapshot(progress=40))
        await store.request_cancel("job-1")

        assert [s["progress"] for s in store.history["job-1"]] == [10, 40]
        assert await store.is_cancelled("job-1") is True


@pytest.mark.unit
class TestSqlAlchemyJobStore:

    def test_satisfies_protocol(self, mock_session_factory):
        assert isinstance(SqlAlchemyJobStore(mock_session_factory), JobStore)

    async def test_write_creates_row(self, mock_session_factory, mock_db):
        store = SqlAlchemyJobStore(mock_session_factory)
        await store.write("job-1", _snapshot())

        mock_db.get.assert_awaited_once_with(ProcessingJob, "job-1")
        (job,), _ = mock_db.add.call_args
        assert isinstance(job, ProcessingJob)
        assert job.job_id == "job-1"
        assert job.status == "processing"
        assert job.stage == "extracting"
        assert job.progress == 10
        assert job.cancel_requested is False
        assert job.snapshot["updated_at"] == "2024-05-01T12:00:00+00:00"
        mock_db.begin.assert_called_once()

    async def test_write_updates_existing_row(self, mock_session_factory, mock_db):
        existing = ProcessingJob(job_id="job-1", cancel_requested=True)
        mock_db.get.return_value = existing

        await SqlAlchemyJobStore(mock_session_factory).write(
            "job-1", _snapshot(status="error", stage="error", error="boom"),
        )

        mock_db.add.assert_not_called()
        assert existing.status == "error"
        assert existing.error_message == "boom"
        assert existing.cancel_requested is True

    async def test_read_returns_snapshot(self, mock_session_factory, mock_db):
        stored = _snapshot(progress=60)
        mock_db.execute.return_value = MagicMock(scalars=MagicMock(
            return_value=MagicMock(first=MagicMock(return_value=stored))
        ))

        assert await SqlAlchemyJobStore(mock_session_factory).read("job-1") == stored

    async def test_read_unknown_job(self, mock_session_factory):
        assert await SqlAlchemyJobStore(mock_session_factory).read("nope") is None

    async def test_is_cancelled(self, mock_session_factory, mock_db):
        store = SqlAlchemyJobStore(mock_session_factory)
        assert await store.is_cancelled("job-1") is False

        mock_db.execute.return_value = MagicMock(scalars=MagicMock(
            return_value=MagicMock(first=MagicMock(return_value=True))
        ))
        assert await store.is_cancelled("job-1") is True

    async def test_request_cancel_issues_update(self, mock_session_factory, mock_db):
        await SqlAlchemyJobStore(mock_session_factory).request_cancel("job-1")

        (statement,), _ = mock_db.execute.call_args
        assert statement.is_dml
        assert "processing_jobs" in str(statement)
