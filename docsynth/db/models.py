"""
SQLAlchemy ORM model for job snapshots (2.x style, async-compatible).

One row per job. The latest snapshot is stored whole in a JSON column; the
status / stage / progress columns duplicate it for querying. The
cancel_requested flag is written by whoever cancels the job and read by the
tracker at stage boundaries.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class ProcessingJob(Base):
    """
    State machine (status column):
        pending    — job created, nothing started
        processing — somewhere between uploading and saving (see stage)
        complete   — result assembled
        error      — unrecoverable failure (see error_message)
        cancelled  — stopped at a stage boundary on request
    """

    __tablename__ = "processing_jobs"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'complete', 'error', 'cancelled')",
            name="processing_jobs_status_check",
        ),
        CheckConstraint("progress BETWEEN 0 AND 100", name="processing_jobs_progress_check"),
        Index("idx_processing_jobs_status", "status"),
    )

    job_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    document_ref: Mapped[str] = mapped_column(Text, nullable=False, default="")

    status:   Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    stage:    Mapped[str] = mapped_column(String(40), nullable=False, default="pending")
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    cancel_requested: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<ProcessingJob id={self.job_id} status={self.status} stage={self.stage}>"
