"""Rate limit handling for Notion API."""

import asyncio
import logging
from typing import Callable, Any
from functools import wraps

from notion_client import APIErrorCode
from notion_client.errors import APIResponseError

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER = 1.0


def handle_rate_limit(max_retries: int = 3):
    """
    Decorator to handle Notion API rate limits with automatic retry.

    Notion API returns 429 status code when rate limited, along with
    a Retry-After header indicating how long to wait.

    Args:
        max_retries: Maximum number of retry attempts

    Returns:
        Decorated coroutine function that handles rate limits
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            retries = 0

            while True:
                try:
                    return await func(*args, **kwargs)

                except APIResponseError as e:
                    if not is_rate_limited(e):
                        raise

                    retries += 1
                    if retries > max_retries:
                        logger.error(f"Max retries ({max_retries}) exceeded for rate limit")
                        raise

                    retry_after = _extract_retry_after(e)
                    logger.warning(
                        f"Rate limit hit. Waiting {retry_after} seconds before retry "
                        f"(attempt {retries}/{max_retries})"
                    )
                    await asyncio.sleep(retry_after)

        return wrapper
    return decorator


def is_rate_limited(error: APIResponseError) -> bool:
    return error.code == APIErrorCode.RateLimited or getattr(error, 'status', None) == 429


def _extract_retry_after(error: APIResponseError) -> float:
    """
    Extract retry-after duration from a Notion API error.

    Args:
        error: APIResponseError from Notion client

    Returns:
        Number of seconds to wait before retrying
    """
    headers = getattr(error, 'headers', None)
    if headers:
        retry_after = headers.get('Retry-After')
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                logger.warning(f"Ignoring malformed Retry-After header: {retry_after}")

    return DEFAULT_RETRY_AFTER
