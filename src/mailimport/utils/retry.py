"""
Retry decorator with exponential backoff for Google API calls.
"""

from __future__ import annotations
import functools
import random
import time
from typing import Callable, Tuple, Type

from mailimport.logging import logger


def retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    backoff_factor: float = 2.0,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
) -> Callable:
    """
    Retry the decorated function when it raises one of `exceptions`.

    Args:
        max_retries: Number of retries after the first attempt
        initial_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for a single delay
        backoff_factor: Multiplier applied to the delay after each retry
        exceptions: Exception types that trigger a retry

    Returns:
        Decorator. The last exception is re-raised once retries are exhausted.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            delay = initial_delay
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_retries:
                        logger.error(f"{func.__name__} failed after {max_retries} retries: {e}")
                        raise
                    sleep_for = min(delay, max_delay) * (0.5 + random.random() / 2)
                    logger.warning(
                        f"{func.__name__} failed (attempt {attempt + 1}/{max_retries + 1}): {e}; "
                        f"retrying in {sleep_for:.2f}s"
                    )
                    time.sleep(sleep_for)
                    delay *= backoff_factor

        return wrapper

    return decorator
