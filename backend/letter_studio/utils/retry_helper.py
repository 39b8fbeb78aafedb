"""
Retry helper for handling LLM overload errors
"""
import asyncio
import logging
import os
from typing import TypeVar, Callable, Awaitable

log = logging.getLogger(__name__)

T = TypeVar('T')

# Substrings the Gemini client puts in quota and overload errors
TRANSIENT_MARKERS = ("429", "503", "overloaded", "resource exhausted", "resource_exhausted", "unavailable")


class AIServiceBusyError(Exception):
    """The model provider stayed overloaded for every attempt."""


def is_transient_error(error: Exception) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in TRANSIENT_MARKERS)


async def retry_with_backoff(
    func: Callable[..., Awaitable[T]],
    *args,
    max_retries: int = int(os.getenv("LLM_MAX_RETRIES", "3")),
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    **kwargs
) -> T:
    """
    Retry a coroutine function with exponential backoff for overload errors.

    Args:
        func: The async function to retry
        max_retries: Maximum number of attempts
        initial_delay: Initial delay in seconds
        backoff_factor: Factor to multiply delay by after each retry
        *args, **kwargs: Arguments to pass to the function

    Returns:
        The result of the function call

    Raises:
        AIServiceBusyError if every attempt hit an overload error, otherwise
        the first non-transient exception unchanged.
    """
    delay = initial_delay

    for attempt in range(max_retries):
        try:
            result = await func(*args, **kwargs)
            if attempt > 0:
                log.info(f"Successfully completed after {attempt + 1} attempts")
            return result

        except Exception as e:
            if not is_transient_error(e):
                raise

            if attempt < max_retries - 1:
                log.warning(
                    f"AI service overloaded (attempt {attempt + 1}/{max_retries}), "
                    f"retrying in {delay:.1f}s..."
                )
                await asyncio.sleep(delay)
                delay *= backoff_factor
            else:
                log.error(f"AI service overloaded after {max_retries} attempts")
                raise AIServiceBusyError(
                    "The AI service is currently experiencing high traffic. "
                    "Please try again in a few moments."
                ) from e

    raise AIServiceBusyError("Retry failed: no attempts were made")
