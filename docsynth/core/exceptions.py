"""
Error hierarchy shared by the extraction, generation and job layers.

Strategies report expected failures as tagged results; these exceptions are
for conditions the caller has to act on.
"""

from __future__ import annotations

from typing import Sequence


class DocSynthError(Exception):
    """Base class for all pipeline errors."""


class UnsupportedDocument(DocSynthError):
    """The MIME type has no extraction path."""

    def __init__(self, mime_type: str) -> None:
        super().__init__(f"Unsupported document type: {mime_type or 'unknown'}")
        self.mime_type = mime_type


class ExtractionFailed(DocSynthError):
    """
    No extraction strategy produced any non-empty text.

    ``attempts`` holds one ``(method, length, reason)`` tuple per strategy
    that ran, in the order they were tried.
    """

    def __init__(self, attempts: Sequence[tuple[str, int, str]]) -> None:
        self.attempts = list(attempts)
        detail = ", ".join(f"{m}={n} ({r})" for m, n, r in self.attempts) or "none"
        super().__init__(f"Text extraction failed. Attempts: {detail}")


class JobCancelled(DocSynthError):
    """The job's cancellation flag was set; raised at a stage boundary."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job {job_id} was cancelled")
        self.job_id = job_id


class InvalidTransition(DocSynthError):
    """A job stage change that the state machine does not allow."""

    def __init__(self, job_id: str, current: str, target: str) -> None:
        super().__init__(f"Job {job_id}: cannot move from {current} to {target}")
        self.job_id  = job_id
        self.current = current
        self.target  = target


class CollaboratorError(DocSynthError):
    """An external collaborator (store, OCR engine, LLM) failed permanently."""
