"""
JobStore implementations.

  InMemoryJobStore    — dict-backed; local runs and tests. Keeps every
                        written snapshot per job in `history`.
  SqlAlchemyJobStore  — processing_jobs table via an async session factory.

Both only persist what the tracker hands them; neither interprets stages.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docsynth.db.models import ProcessingJob

logger = logging.getLogger(__name__)


class InMemoryJobStore:
    def __init__(self) -> None:
        self._snapshots: dict[str, dict[str, Any]] = {}
        self._cancelled: set[str] = set()
        self.history: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def write(self, job_id: str, snapshot: dict[str, Any]) -> None:
        async with self._lock:
            stored = copy.deepcopy(snapshot)
            self._snapshots[job_id] = stored
            self.history[job_id].append(stored)

    async def read(self, job_id: str) -> dict[str, Any] | None:
        snapshot = self._snapshots.get(job_id)
        return copy.deepcopy(snapshot) if snapshot is not None else None

    async def is_cancelled(self, job_id: str) -> bool:
        return job_id in self._cancelled

    async def request_cancel(self, job_id: str) -> None:
        self._cancelled.add(job_id)


class SqlAlchemyJobStore:
    """
    Usage:
        store = SqlAlchemyJobStore(get_session_factory())
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self._session_factory() as session:
            async with session.begin():
                yield session

    async def write(self, job_id: str, snapshot: dict[str, Any]) -> None:
        async with self._session() as db:
            job = await db.get(ProcessingJob, job_id)
            if job is None:
                job = ProcessingJob(job_id=job_id, cancel_requested=False)
                db.add(job)
            job.document_ref  = snapshot.get("document_ref", "") or ""
            job.status        = snapshot["status"]
            job.stage         = snapshot["stage"]
            job.progress      = snapshot["progress"]
            job.error_message = snapshot.get("error")
            job.snapshot      = dict(snapshot)
        logger.debug(
            "Job snapshot stored | job=%s status=%s stage=%s progress=%s",
            job_id, snapshot["status"], snapshot["stage"], snapshot["progress"],
        )

    async def read(self, job_id: str) -> dict[str, Any] | None:
        async with self._session() as db:
            result = await db.execute(
                select(ProcessingJob.snapshot).where(ProcessingJob.job_id == job_id)
            )
            return result.scalars().first()

    async def is_cancelled(self, job_id: str) -> bool:
        async with self._session() as db:
            result = await db.execute(
                select(ProcessingJob.cancel_requested).where(ProcessingJob.job_id == job_id)
            )
            return bool(result.scalars().first())

    async def request_cancel(self, job_id: str) -> None:
        async with self._session() as db:
            await db.execute(
                update(ProcessingJob)
                .where(ProcessingJob.job_id == job_id)
                .values(cancel_requested=True)
            )
        logger.info("Cancellation requested | job=%s", job_id)
