"""Timeout and bounded retry for upstream provider calls.

Only side-effect-free calls go through here (embed, retrieve, summarize,
synthesize). Persistence writes are never retried.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

import anthropic
import httpx
import openai

from app.core.logging import get_logger

if TYPE_CHECKING:
    from app.core.config import Settings

logger = get_logger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    asyncio.TimeoutError,
    httpx.TransportError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
    anthropic.APIConnectionError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
)


@dataclass(frozen=True)
class RetryPolicy:
    """Per-call timeout plus exponential backoff settings."""

    timeout: float = 60.0
    max_retries: int = 2
    initial_delay: float = 1.0

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        return cls(
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
            max_retries=settings.PROVIDER_MAX_RETRIES,
            initial_delay=settings.PROVIDER_RETRY_INITIAL_DELAY,
        )


async def call_with_retry(
    call: Callable[[], Awaitable[T]],
    *,
    label: str,
    policy: RetryPolicy,
) -> T:
    """
    Await ``call()`` under a timeout, retrying transient failures.

    Args:
        call: Zero-arg factory producing a fresh awaitable per attempt
        label: Step name for logs
        policy: Timeout and backoff settings

    Returns:
        The call's result

    Raises:
        The last transient error once retries are exhausted, or any
        non-transient error immediately.
    """
    attempts = max(policy.max_retries, 0) + 1
    for attempt in range(attempts):
        try:
            return await asyncio.wait_for(call(), timeout=policy.timeout)
        except TRANSIENT_ERRORS as e:
            if attempt + 1 >= attempts:
                raise
            delay = policy.initial_delay * (2 ** attempt)
            logger.warning(
                f"{label} attempt {attempt + 1}/{attempts} failed "
                f"({type(e).__name__}), retrying in {delay}s"
            )
            await asyncio.sleep(delay)

    raise RuntimeError(f"{label}: retry loop exited without a result")  # unreachable
