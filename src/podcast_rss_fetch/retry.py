"""Retry helper with exponential backoff for transient network errors."""

import logging
import time
from typing import Any, Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)


def retry_with_backoff(
    func: Callable[[], Any],
    attempts: int = 3,
    base_delay: float = 2.0,
    retryable: Tuple[Type[BaseException], ...] = (Exception,),
    description: str = "operation",
) -> Any:
    """
    Call ``func`` until it succeeds or ``attempts`` calls have failed.

    After failed attempt ``n`` (1-based) the call sleeps
    ``base_delay * 2 ** (n - 1)`` seconds, so the defaults wait 2s then 4s.
    Exceptions outside ``retryable`` propagate immediately.

    Args:
        func: Zero-argument callable to run
        attempts: Total number of attempts, at least 1
        base_delay: Delay in seconds after the first failed attempt
        retryable: Exception types that trigger another attempt
        description: Label used in log messages

    Returns:
        Whatever ``func`` returns

    Raises:
        The last exception raised by ``func`` once attempts are exhausted
    """
    attempts = max(1, attempts)
    last_error: Optional[BaseException] = None

    for attempt in range(1, attempts + 1):
        try:
            return func()
        except retryable as exc:
            last_error = exc
            logger.warning(
                "Attempt %d/%d failed for %s: %s", attempt, attempts, description, exc
            )
            if attempt < attempts:
                delay = base_delay * 2 ** (attempt - 1)
                logger.info("Waiting %.1fs before retry...", delay)
                time.sleep(delay)

    logger.error("%s failed after %d attempts: %s", description, attempts, last_error)
    raise last_error
