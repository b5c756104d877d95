from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from .config import EMPTY_RESPONSE_ERROR, RetryPolicy

logger = logging.getLogger(__name__)

AskResult = Union[Optional[str], Awaitable[Optional[str]]]
Ask = Callable[[str], AskResult]
Sleep = Callable[[float], Awaitable[Any]]

ERROR_PREFIX = "Error"


class TerminalUpstreamError(RuntimeError):
    """The model could not produce a usable response."""


def is_retryable(response: Optional[str], prefixes: Sequence[str]) -> bool:
    if not response:
        return True
    return any(response.startswith(prefix) for prefix in prefixes)


async def get_response_with_retry(
    prompt: str,
    ask: Ask,
    *,
    policy: Optional[RetryPolicy] = None,
    sleep: Sleep = asyncio.sleep,
) -> str:
    """
    Call `ask` until it returns something other than an empty or retryable response.

    One call is outstanding at a time; retryable outcomes wait a fixed interval.
    `ask` may be a plain function or a coroutine function.
    """
    policy = policy or RetryPolicy()

    for attempt in range(1, policy.max_attempts + 1):
        logger.debug("Attempt %s of %s to get a model response", attempt, policy.max_attempts)
        response = ask(prompt)
        if inspect.isawaitable(response):
            response = await response

        if not is_retryable(response, policy.retryable_prefixes):
            logger.debug("Received a usable response or a non-retryable error")
            return response

        logger.debug("Retryable response %r, retrying", response)
        if attempt < policy.max_attempts:
            await sleep(policy.delay_seconds)

    logger.error("Failed to get a valid response after %s attempts", policy.max_attempts)
    return policy.terminal_message


def is_error_response(response: Optional[str]) -> bool:
    return not response or response.startswith(ERROR_PREFIX)


def raise_for_error(response: Optional[str]) -> str:
    """Return `response`, or raise TerminalUpstreamError if it is an error text."""
    if is_error_response(response):
        raise TerminalUpstreamError(response or EMPTY_RESPONSE_ERROR)
    return response


__all__ = [
    "TerminalUpstreamError",
    "is_retryable",
    "get_response_with_retry",
    "is_error_response",
    "raise_for_error",
]
