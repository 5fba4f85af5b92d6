"""Retry logic with exponential backoff for transient HTTP failures"""

import logging
import time
from typing import Callable, Optional, Type, Tuple
from functools import wraps

import requests


logger = logging.getLogger(__name__)

# Status codes worth another attempt; everything else is final
RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


class TransientHTTPError(requests.exceptions.HTTPError):
    """An HTTP error response that may succeed when repeated."""


def raise_for_transient(response: requests.Response) -> None:
    """Raise TransientHTTPError for throttling and server errors.

    Other error statuses are left for ``response.raise_for_status()``.
    """
    if response.status_code in RETRYABLE_STATUS:
        raise TransientHTTPError(
            f"{response.status_code} from {response.url}", response=response
        )


TRANSIENT_ERRORS: Tuple[Type[Exception], ...] = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    TransientHTTPError,
)


def retry_with_backoff(
    func: Optional[Callable] = None,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = TRANSIENT_ERRORS
) -> Callable:
    """Retry a function with exponential backoff.

    Can be used as a decorator or called directly.

    Args:
        func: Function to retry (when used as decorator without arguments)
        max_retries: Maximum number of retry attempts
        initial_delay: Initial delay in seconds
        backoff_factor: Multiplier for delay on each retry
        exceptions: Tuple of exceptions to catch and retry

    Returns:
        Decorated function or decorator

    Example:
        @retry_with_backoff(max_retries=3)
        def my_function():
            pass
    """
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def wrapper(*args, **kwargs):
            delay = initial_delay
            last_exception = None

            for attempt in range(max_retries + 1):
                try:
                    return f(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if attempt < max_retries:
                        logger.warning(
                            f"{f.__name__} failed (attempt {attempt + 1}/{max_retries + 1}): {e}. "
                            f"Retrying in {delay:.1f}s..."
                        )
                        time.sleep(delay)
                        delay *= backoff_factor
                    else:
                        logger.error(
                            f"{f.__name__} failed after {max_retries + 1} attempts: {e}"
                        )

            raise last_exception

        return wrapper

    # Support both @retry_with_backoff and @retry_with_backoff()
    if func is not None:
        return decorator(func)
    return decorator
