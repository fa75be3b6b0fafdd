"""Bounded retry for persistence faults."""

import logging
import time
from typing import Callable, TypeVar

from escrow_engine.exceptions import StorageError, TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_retries(
    func: Callable[[], T],
    attempts: int = 3,
    delay_seconds: float = 0.05,
    backoff: str = "exponential",
    retry_on: tuple[type[Exception], ...] = (StorageError,),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``func`` until it succeeds or ``attempts`` are exhausted.

    Parameters
    ----------
    func : Callable[[], T]
        Zero-argument callable performing the storage operation.
    attempts : int
        Maximum number of calls (at least 1).
    delay_seconds : float
        Base delay between attempts.
    backoff : str
        "fixed", "linear" or "exponential".
    retry_on : tuple[type[Exception], ...]
        Exception types considered transient.
    sleep : Callable[[float], None]
        Sleep function (injected in tests).

    Returns
    -------
    T
        Whatever ``func`` returns.

    Raises
    ------
    TransientError
        If every attempt raised one of ``retry_on``.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    if backoff not in ("fixed", "linear", "exponential"):
        raise ValueError("backoff must be one of 'fixed', 'linear', 'exponential'")

    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except retry_on as exc:
            last_error = exc
            if attempt == attempts:
                break
            wait = _delay_for(attempt, delay_seconds, backoff)
            logger.warning(
                "Storage attempt %d/%d failed: %s; retrying in %.3fs",
                attempt,
                attempts,
                exc,
                wait,
            )
            sleep(wait)

    raise TransientError(
        f"Storage unavailable after {attempts} attempts: {last_error}",
        attempts=attempts,
        cause=last_error,
    ) from last_error


def _delay_for(attempt: int, delay_seconds: float, backoff: str) -> float:
    if backoff == "fixed":
        return delay_seconds
    if backoff == "linear":
        return delay_seconds * attempt
    return delay_seconds * (2 ** (attempt - 1))
