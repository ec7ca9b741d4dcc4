"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Retry logic for file persistence.

Used for state and artifact writes only. Claim submission is never retried
here: whether to resubmit is the caller's decision, and resubmitting is safe
because a second claim for the same phase is rejected as already claimed.
"""

import functools
import time
from typing import Any, Callable, Tuple, Type, TypeVar

from airdrop.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


def retry_on_transient_failure(
    max_retries: int = 3,
    base_delay: float = 0.1,
    backoff_factor: float = 2.0,
    transient_exceptions: Tuple[Type[Exception], ...] = (OSError,)
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator to retry a function on transient failures with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts (default: 3)
        base_delay: Initial delay in seconds before first retry (default: 0.1)
        backoff_factor: Multiplier for delay between retries (default: 2.0)
        transient_exceptions: Exception types to retry on (default: OSError)

    Returns:
        Decorated function that retries on transient failures

    Example:
        @retry_on_transient_failure(max_retries=3)
        def write_state(path, content):
            with open(path, 'w') as f:
                f.write(content)
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            def attempt() -> T:
                return func(*args, **kwargs)

            return _run_with_retry(
                attempt, func.__name__, max_retries, base_delay, backoff_factor, transient_exceptions
            )

        return wrapper
    return decorator


def retry_write_operation(
    operation: Callable[[], T],
    operation_name: str,
    max_retries: int = 3,
    base_delay: float = 0.1,
    backoff_factor: float = 2.0
) -> T:
    """
    Execute a write operation with retry logic.

    Functional alternative to the decorator for wrapping a single call.

    Raises:
        OSError: The last failure if all retries fail

    Example:
        retry_write_operation(lambda: artifact.save(path), "save_artifact")
    """
    return _run_with_retry(operation, operation_name, max_retries, base_delay, backoff_factor, (OSError,))


def _run_with_retry(
    operation: Callable[[], T],
    operation_name: str,
    max_retries: int,
    base_delay: float,
    backoff_factor: float,
    transient_exceptions: Tuple[Type[Exception], ...],
) -> T:
    last_exception = None

    for attempt in range(max_retries + 1):  # +1 for initial attempt
        try:
            return operation()
        except transient_exceptions as e:
            last_exception = e

            if attempt < max_retries:
                delay = base_delay * (backoff_factor ** attempt)
                logger.warning(
                    f"Transient failure in {operation_name} (attempt {attempt + 1}/{max_retries + 1}): {e}. "
                    f"Retrying in {delay:.2f}s..."
                )
                time.sleep(delay)
            else:
                logger.error(
                    f"Permanent failure in {operation_name} after {max_retries + 1} attempts: {e}",
                    exc_info=True
                )

    raise last_exception
