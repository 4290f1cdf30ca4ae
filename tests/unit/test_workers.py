"""
Unit Tests — Celery Worker and CLI Entry Points
═══════════════════════════════════════════════
Tests for docsynth/workers/*.py and docsynth/__main__.py

Celery runs on the in-memory broker (see conftest.py); nothing is
actually published.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest


@pytest.mark.unit
class TestCeleryApp:

    def test_routes_and_serialization(self):
        from docsynth.workers.celery_app import celery_app

        assert celery_app.conf.task_serializer == "json"
        assert celery_app.conf.accept_content == ["json"]
        assert celery_app.conf.task_routes["docsynth.workers.tasks.generate_dataset"] == {
            "queue": "datasets.generate",
        }
        assert {q.name for q in celery_app.conf.task_queues} == {"datasets.generate", "system.health"}

    def test_run_async_outside_loop(self):
        from docsynth.workers.tasks import run_async

        async def _answer() -> int:
            return 42

        assert run_async(_answer()) == 42

    async def test_run_async_inside_running_loop(self):
        from docsynth.workers.tasks import run_async

        async def _answer() -> str:
            return "from worker thread"

        assert run_async(_answer()) == "from worker thread"

    def test_worker_start_ensures_tables(self):
        from docsynth.workers.tasks import ensure_tables

        with patch("docsynth.db.session.create_tables", new=AsyncMock()) as create:
            ensure_tables()
        create.assert_awaited_once()

    def test_worker_start_survives_db_outage(self):
        from docsynth.workers.tasks import ensure_tables

        with patch("docsynth.db.session.create_tables", new=AsyncMock(side_effect=OSError("db down"))):
            ensure_tables()


@pytest.mark.unit
class TestTaskPublisher:

    async def test_publish_writes_pending_then_enqueues(self, job_store):
        from docsynth.workers.tasks import TaskPublisher

        with patch("docsynth.workers.tasks.generate_dataset") as task:
            job_id = await TaskPublisher(job_store).publish(
                "s3://docs/lease.pdf", options={"mode": "synthetic"}, job_id="job-p",
            )

        assert job_id == "job-p"
        assert (await job_store.read("job-p"))["status"] == "pending"
        task.apply_async.assert_called_once_with(kwargs={
            "job_id":       "job-p",
            "document_ref": "s3://docs/lease.pdf",
            "mime_type":    "application/pdf",
            "options":      {"mode": "synthetic"},
        })


@pytest.mark.unit
class TestGenerateDatasetTask:

    @pytest.fixture
    def production_adapters(self, object_store, job_store, fake_llm):
        """Swap every production adapter for its in-memory counterpart."""
        with patch("docsynth.storage.s3.S3ObjectStore", return_value=object_store), \
             patch("docsynth.jobs.stores.SqlAlchemyJobStore", return_value=job_store), \
             patch("docsynth.db.session.get_session_factory", return_value=MagicMock()), \
             patch("docsynth.llm.client.ChatRewriteClient", return_value=fake_llm), \
             patch("docsynth.ocr.textract.TextractOcrEngine", return_value=None):
            yield

    async def test_complete(self, production_adapters, object_store, contract_text):
        from docsynth.workers.tasks import _generate_dataset_async

        object_store.put("lease.txt", contract_text.encode())
        result = await _generate_dataset_async(
            job_id="job-t", document_ref="lease.txt", mime_type="text/plain",
            options={"output_format": "jsonl"},
        )

        assert result["status"] == "complete"
        assert result["records"] == 3
        assert result["mode"] == "variants"
        assert json.loads(result["output"].splitlines()[0])["classification"] == "Critical"

    async def test_failure_is_reported_not_raised(self, production_adapters, job_store):
        from docsynth.workers.tasks import _generate_dataset_async

        result = await _generate_dataset_async(
            job_id="job-f", document_ref="missing.txt", mime_type="text/plain", options={},
        )

        assert result["status"] == "error"
        assert "missing.txt" in result["error"]
        assert (await job_store.read("job-f"))["status"] == "error"

    async def test_cancelled(self, production_adapters, object_store, job_store, contract_text):
        from docsynth.workers.tasks import _generate_dataset_async

        object_store.put("lease.txt", contract_text.encode())
        await job_store.request_cancel("job-x")

        result = await _generate_dataset_async(
            job_id="job-x", document_ref="lease.txt", mime_type="text/plain", options={},
        )
        assert result == {"status": "cancelled", "job_id": "job-x"}


@pytest.mark.unit
class TestCli:

    def test_generates_variants_file(self, tmp_path, contract_text):
        from docsynth.__main__ import main

        source = tmp_path / "lease.txt"
        source.write_text(contract_text, encoding="utf-8")
        output = tmp_path / "out.jsonl"

        assert main([str(source), "--no-llm", "--format", "prompt", "-o", str(output)]) == 0

        payload = output.read_text(encoding="utf-8")
        assert not payload.endswith("\n")

        rows = [json.loads(line) for line in payload.split("\n")]
        assert len(rows) == 3
        assert set(rows[0]) == {"prompt", "completion"}

    def test_synthetic_to_stdout(self, tmp_path, invoice_text, capsys):
        from docsynth.__main__ import main

        source = tmp_path / "invoice.txt"
        source.write_text(invoice_text, encoding="utf-8")

        assert main([str(source), "--mode", "synthetic", "--records", "4"]) == 0

        out = capsys.readouterr().out
        assert not out.endswith("\n")

        rows = [json.loads(line) for line in out.split("\n")]
        assert len(rows) == 4
        assert "Invoice Number" in rows[0]

    def test_invalid_options_exit_nonzero(self, tmp_path, contract_text):
        from docsynth.__main__ import main

        source = tmp_path / "lease.txt"
        source.write_text(contract_text, encoding="utf-8")

        assert main([str(source), "--chunk-size", "50", "--overlap", "80"]) == 1
