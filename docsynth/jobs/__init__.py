"""
Job lifecycle: stage state machine, snapshot stores, I/O retry helper.

docsynth.jobs.pipeline is imported directly, not re-exported: generation
modules import jobs.retry, so a re-export here would be circular.
"""

from docsynth.jobs.retry import retry_async
from docsynth.jobs.stores import InMemoryJobStore, SqlAlchemyJobStore
from docsynth.jobs.tracker import JobStage, JobStats, JobStatus, JobTracker

__all__ = [
    "retry_async",
    "InMemoryJobStore",
    "SqlAlchemyJobStore",
    "JobStage",
    "JobStats",
    "JobStatus",
    "JobTracker",
]
