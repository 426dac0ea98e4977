from __future__ import annotations

import logging

import psycopg2
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

logger = logging.getLogger("campuseats.retry")

DB_MAX_ATTEMPTS = 3
DB_BASE_DELAY_S = 0.5
DB_MAX_DELAY_S = 4.0

# Connection drops / server restarts; constraint errors are never retried
TRANSIENT_DB_ERRORS = (psycopg2.OperationalError, psycopg2.InterfaceError)


def db_read_retry(fn):
    """
    Retry an idempotent read on transient connection errors, then re-raise the last one.

    Writes in the withdrawal workflow are never wrapped.
    """
    return retry(
        stop=stop_after_attempt(DB_MAX_ATTEMPTS),
        wait=wait_random_exponential(multiplier=DB_BASE_DELAY_S, max=DB_MAX_DELAY_S),
        retry=retry_if_exception_type(TRANSIENT_DB_ERRORS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )(fn)
