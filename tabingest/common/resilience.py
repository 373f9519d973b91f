"""
Retry strategies for the store connection and remote downloads.
"""

import logging
from typing import Callable, Tuple, Type
from functools import wraps

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
    after_log,
)

logger = logging.getLogger(__name__)


def retry_store_connect(
    attempts: int = 3,
    max_wait: float = 10.0,
    retry_on: Tuple[Type[BaseException], ...] = (ConnectionError,),
) -> Callable:
    """
    Retry decorator for acquiring a store connection.

    Only the exception types in ``retry_on`` are retried; the last error is
    re-raised unchanged.
    """
    def decorator(func: Callable) -> Callable:
        @retry(
            stop=stop_after_attempt(max(attempts, 1)),
            wait=wait_exponential(multiplier=1, min=0, max=max_wait),
            retry=retry_if_exception_type(retry_on),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            after=after_log(logger, logging.DEBUG),
            reraise=True,
        )
        @wraps(func)
        def wrapper(*args, **kwargs):
            return func(*args, **kwargs)
        return wrapper
    return decorator


def retry_download(func: Callable) -> Callable:
    """
    Retry decorator for remote downloads and listings.

    Retries 3 times with exponential backoff on transport errors.
    """
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(
            (httpx.TransportError, ConnectionError, TimeoutError)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        after=after_log(logger, logging.DEBUG),
        reraise=True,
    )
    @wraps(func)
    def wrapper(*args, **kwargs):
        return func(*args, **kwargs)
    return wrapper
