"""Retry logic with exponential backoff"""

import asyncio
import random
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

import httpx
from curl_cffi import CurlError
from loguru import logger

from .config import (
    AUTH_STATUS_CODES,
    BASE_DELAY,
    MAX_JITTER,
    MAX_RETRIES,
)
from .exceptions import (
    ApiError,
    AuthClassifiedError,
    TransientUpstreamError,
)
from .models import ErrorType

T = TypeVar("T")


async def retry_with_backoff(
    func: Callable[..., Awaitable[T]],
    *args,
    max_retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY,
    max_jitter: float = MAX_JITTER,
    non_retryable_status_codes: Iterable[int] = (),
    on_retry: Optional[Callable] = None,
    **kwargs,
) -> T:
    """
    Execute function with exponential backoff retry logic.

    The delay before retry ``n`` (0-based) is ``base_delay * 2**n`` plus a
    random jitter of up to ``max_jitter`` seconds. Auth failures and errors
    carrying one of ``non_retryable_status_codes`` are re-raised immediately.

    Args:
        func: Async function to execute
        max_retries: Maximum number of retry attempts
        base_delay: Base backoff duration in seconds
        max_jitter: Upper bound of the random jitter in seconds
        non_retryable_status_codes: Status codes that must not be retried
        on_retry: Optional callback called on each retry: on_retry(attempt, error)
    """
    non_retryable = set(non_retryable_status_codes)
    last_exception: Optional[BaseException] = None

    for attempt in range(max_retries + 1):
        try:
            result = await func(*args, **kwargs)

            if attempt > 0:
                logger.success(f"✓ Recovered after {attempt} retries")

            return result

        except Exception as e:
            last_exception = e

            if isinstance(e, AuthClassifiedError):
                logger.debug(f"Auth failure, not retrying: {e}")
                raise

            status = get_status_code(e)
            if status is not None and status in non_retryable:
                logger.debug(f"Non-retryable error (HTTP {status}): {e}")
                raise

            if attempt >= max_retries:
                logger.error(f"❌ Failed after {max_retries} retries: {e}")
                break

            sleep_time = base_delay * (2 ** attempt) + random.uniform(0, max_jitter)

            error_type = classify_error(e)
            logger.warning(
                f"⚠️ Attempt {attempt + 1}/{max_retries + 1} failed "
                f"({error_type.value}): {e}"
            )
            logger.info(f"   Retrying in {sleep_time:.1f}s...")

            if on_retry:
                await on_retry(attempt, e)

            await asyncio.sleep(sleep_time)

    raise last_exception


async def run_with_timeout(
    coro: Awaitable[T], timeout: float, endpoint: str = ""
) -> T:
    """Bound a single attempt; a timeout becomes a TransientUpstreamError"""
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise TransientUpstreamError(
            f"Request timed out after {timeout:.0f}s", endpoint=endpoint
        ) from e


def get_status_code(error: BaseException) -> Optional[int]:
    """Extract an HTTP status code from an error, if it carries one"""
    if isinstance(error, ApiError):
        return error.status_code
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    status = getattr(error, "status_code", None)
    return status if isinstance(status, int) else None


def classify_error(error: BaseException) -> ErrorType:
    """Classify error for appropriate handling"""
    if isinstance(error, AuthClassifiedError):
        return ErrorType.AUTH_FAILURE

    status = get_status_code(error)
    if status is not None:
        if status in AUTH_STATUS_CODES:
            return ErrorType.AUTH_FAILURE
        if status == 429:
            return ErrorType.RATE_LIMIT
        if status >= 500:
            return ErrorType.TRANSIENT
        return ErrorType.PERMANENT

    if isinstance(
        error,
        (
            TransientUpstreamError,
            httpx.TransportError,
            CurlError,
            asyncio.TimeoutError,
            ConnectionError,
        ),
    ):
        return ErrorType.TRANSIENT
    return ErrorType.PERMANENT
