"""
Logging setup for entry points (CLI, Celery worker).

Library modules only ever call logging.getLogger(__name__); handlers and
levels are configured here, once, by whoever owns the process.
"""

from __future__ import annotations

import logging

from docsynth.core.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# Third-party loggers that are chatty at DEBUG / INFO
NOISY_LOGGERS = ("botocore", "boto3", "aiobotocore", "urllib3", "httpx", "openai")


def quiet_noisy_loggers() -> None:
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def configure_logging(debug: bool | None = None) -> None:
    """Root logger setup for worker and CLI entry points."""
    debug = get_settings().debug if debug is None else debug
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
    )
    quiet_noisy_loggers()
