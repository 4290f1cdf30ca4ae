"""
Celery Application Factory

Out-of-process equivalent of DocumentPipeline.submit(): a worker picks up
generate_dataset and drives the same pipeline, writing job snapshots to the
database so callers poll the job store, not Celery results.

Queue topology:
  datasets.generate  — dataset generation jobs
  system.health      — internal health-check tasks

Task payloads carry object-store references, never raw document bytes.
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import after_setup_logger, task_failure, task_postrun, task_prerun
from kombu import Exchange, Queue

from docsynth.core.config import get_settings
from docsynth.core.logging import quiet_noisy_loggers

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Queue and exchange definitions
# ---------------------------------------------------------------------------

DATASETS_EXCHANGE = Exchange("datasets", type="direct", durable=True)

TASK_QUEUES = (
    Queue(
        "datasets.generate",
        exchange=DATASETS_EXCHANGE,
        routing_key="datasets.generate",
        durable=True,
    ),
    Queue(
        "system.health",
        Exchange("system", type="direct"),
        routing_key="system.health",
        durable=True,
    ),
)

TASK_ROUTES = {
    "docsynth.workers.tasks.generate_dataset": {"queue": "datasets.generate"},
    "docsynth.workers.tasks.health_check":     {"queue": "system.health"},
}

# ---------------------------------------------------------------------------
# Celery app factory
# ---------------------------------------------------------------------------

def create_celery_app() -> Celery:
    settings = get_settings()
    app = Celery("docsynth")

    app.conf.update(
        broker_url=settings.celery_broker_url,
        result_backend=settings.celery_result_backend,

        # --- Serialization (reject non-JSON messages) ---
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        event_serializer="json",

        # --- Queues ---
        task_queues=TASK_QUEUES,
        task_routes=TASK_ROUTES,
        task_default_queue="datasets.generate",
        task_default_exchange="datasets",
        task_default_routing_key="datasets.generate",

        # --- Reliability ---
        task_acks_late=True,            # ack only after the task finishes
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,   # one job at a time per worker process

        # --- Result TTL ---
        result_expires=3600,   # job state lives in the job store, not here

        timezone="UTC",
        enable_utc=True,

        worker_max_tasks_per_child=200,   # recycle workers (PyMuPDF page buffers)
    )

    app.autodiscover_tasks(["docsynth.workers"])
    return app


celery_app = create_celery_app()


# ---------------------------------------------------------------------------
# Celery signals: task lifecycle logging
# ---------------------------------------------------------------------------

@task_prerun.connect
def on_task_prerun(task_id, task, args, kwargs, **_):
    logger.info(
        "Task start | task_id=%s task=%s job=%s doc=%s",
        task_id, task.name, kwargs.get("job_id", "?"), kwargs.get("document_ref", "?"),
    )


@task_postrun.connect
def on_task_postrun(task_id, task, args, kwargs, retval, state, **_):
    logger.info(
        "Task end | task_id=%s task=%s state=%s job=%s",
        task_id, task.name, state, kwargs.get("job_id", "?"),
    )


@task_failure.connect
def on_task_failure(task_id, exception, args, kwargs, traceback, einfo, **_):
    logger.error(
        "Task failed | task_id=%s job=%s error=%s",
        task_id, (kwargs or {}).get("job_id", "?"), exception,
        exc_info=True,
    )


@after_setup_logger.connect
def on_after_setup_logger(logger, **_):
    quiet_noisy_loggers()
