"""
Atomic unit helper for status writes.

Every engine operation (and every direct component edit) runs through
run_atomic: the whole operation executes inside one database transaction and
either commits entirely or leaves no trace. Version conflicts and lock or
serialization errors roll back and re-run the operation from scratch, so all
reads (in particular every `from` status) are repeated against fresh state.
"""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from django.conf import settings
from django.db import DatabaseError, OperationalError, transaction

from apps.components.exceptions import ConcurrentUpdateError, TransactionFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3


def max_write_attempts() -> int:
    return max(1, int(getattr(settings, "STATUSPAGE_MAX_WRITE_ATTEMPTS", DEFAULT_MAX_ATTEMPTS)))


def run_atomic(
    operation: Callable[[], T],
    label: str = "status write",
    attempts: int | None = None,
) -> T:
    """
    Run `operation` as a single atomic unit, retrying on conflicts.

    Args:
        operation: Zero-argument callable doing all reads and writes.
        label: Human readable name used in logs and errors.
        attempts: Override for STATUSPAGE_MAX_WRITE_ATTEMPTS.

    Returns:
        Whatever `operation` returns.

    Raises:
        TransactionFailure: the unit could not be committed.
        Any domain error raised by `operation` is propagated unchanged
        after rollback.
    """
    max_attempts = attempts or max_write_attempts()
    last_error: Exception | None = None

    for attempt in range(1, max_attempts + 1):
        try:
            with transaction.atomic():
                return operation()
        except (ConcurrentUpdateError, OperationalError) as e:
            last_error = e
            logger.warning(f"{label}: attempt {attempt}/{max_attempts} rolled back: {e}")
        except DatabaseError as e:
            logger.exception(f"{label}: database error, rolled back")
            raise TransactionFailure(f"{label} failed: {e}") from e

    raise TransactionFailure(
        f"{label} failed after {max_attempts} attempts: {last_error}"
    ) from last_error
