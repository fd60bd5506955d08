import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

import httpx

T = TypeVar("T")

JITTER_SECONDS = 0.2

_NON_RETRYABLE_MARKERS = (
    "not found",
    "unauthorized",
    "forbidden",
    "bad request",
    "invalid",
    "malformed",
)


def status_code_of(error: BaseException):
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    return getattr(error, "status_code", None)


def is_retryable(error: BaseException) -> bool:
    """Client errors (4xx except 429) and explicit rejections are final."""
    status = status_code_of(error)
    if isinstance(status, int) and 400 <= status < 500 and status != 429:
        return False

    message = str(error).lower()
    return not any(marker in message for marker in _NON_RETRYABLE_MARKERS)


async def with_retry(
    call: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 0.5,
) -> T:
    """
    Runs `call` until it succeeds, at most `max_retries` attempts in total.
    Waits base_delay * 2^(attempt-1) plus up to 200ms of jitter between attempts.
    """
    attempt = 1
    while True:
        try:
            return await call()
        except Exception as e:
            if not is_retryable(e):
                raise
            if attempt >= max_retries:
                logging.warning(f"Giving up after {attempt} attempts: {e}")
                raise

            delay = base_delay * (2 ** (attempt - 1)) + random.uniform(0, JITTER_SECONDS)
            logging.debug(f"Attempt {attempt} failed ({e}), retrying in {delay:.2f}s")
            await asyncio.sleep(delay)
            attempt += 1
