"""
grading/retry.py - Bounded retry for read queries

Only loads go through here. Writes are never retried automatically: a failed
save is reported and the user decides whether to try again.
"""

import logging
import time

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from grading.errors import LoadError

logger = logging.getLogger(__name__)


def load_with_retry(fetch, what, attempts=None, delay=None):
    """
    Call `fetch()` until it succeeds or `attempts` runs out.

    Waits `delay * 2 ** (attempt - 1)` seconds between attempts and rolls the
    session back after each failure so the next attempt starts clean.
    Raises LoadError once every attempt has failed.
    """
    if attempts is None:
        attempts = current_app.config.get('LOAD_RETRY_ATTEMPTS', 3)
    if delay is None:
        delay = current_app.config.get('LOAD_RETRY_DELAY', 0.5)
    attempts = max(1, attempts)

    last_error = None
    for attempt in range(1, attempts + 1):
        try:
            return fetch()
        except SQLAlchemyError as e:
            last_error = e
            db.session.rollback()
            if attempt < attempts:
                wait_time = delay * (2 ** (attempt - 1))
                logger.warning(
                    'Loading %s failed (attempt %d/%d), retrying in %.1fs: %s',
                    what, attempt, attempts, wait_time, e,
                )
                if wait_time:
                    time.sleep(wait_time)

    logger.error('Loading %s failed after %d attempts: %s', what, attempts, last_error)
    raise LoadError(f'Failed to load {what}. Please try again.', cause=str(last_error))
