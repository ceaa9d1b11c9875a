"""
Rate limiting and retry wrapper for NoteLink AI providers.

Decorator pattern: ResilientProvider wraps any AIProvider so that every
call is admitted by the shared RateLimiter, bounded by a per-call timeout,
and retried with exponential backoff on rate-limit-class failures.
Callers only ever see the final result or the final error.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Tuple, TypeVar

from .base import AIProvider, ContentPart, Vendor
from .errors import (
    ModalityMismatchError,
    ProviderError,
    ProviderNetworkError,
    RateLimitedError,
    parse_retry_after,
    sanitize_error,
)
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")

RATE_LIMIT_STATUSES = (429, 503)

_RATE_LIMIT_SIGNATURES = (
    "rate limit",
    "rate_limit",
    "resource_exhausted",
    "resource exhausted",
    "too many requests",
    "overloaded",
)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry and timeout settings.

    Configuration:
        - max_retries: Retries after the first attempt (default: 3).
        - initial_backoff_seconds: First backoff before jitter (default: 1).
        - max_backoff_seconds: Ceiling for computed backoff (default: 30).
        - jitter: Uniform multiplier range applied to backoff.
        - request_timeout_seconds: Bound on each attempt (default: 60).
    """

    max_retries: int = 3
    initial_backoff_seconds: float = 1.0
    max_backoff_seconds: float = 30.0
    jitter: Tuple[float, float] = (0.9, 1.1)
    request_timeout_seconds: Optional[float] = 60.0

    def compute_backoff(
        self,
        attempt: int,
        retry_after_seconds: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ) -> float:
        """
        Seconds to wait before retry number ``attempt + 1``.

        A server retry hint is honored as-is; otherwise the delay is
        ``initial * 2**attempt * jitter``, capped at ``max_backoff_seconds``.
        """
        if retry_after_seconds is not None:
            return float(retry_after_seconds)

        low, high = self.jitter
        factor = (rng or random).uniform(low, high)
        return min(
            self.initial_backoff_seconds * (2 ** attempt) * factor,
            self.max_backoff_seconds,
        )


DEFAULT_RETRY_POLICY = RetryPolicy()


def _extract_status(exc: BaseException) -> Optional[int]:
    """Find an HTTP status on an exception from any of the vendor SDKs."""
    for attr in ("status_code", "status", "code"):
        val = getattr(exc, attr, None)
        if isinstance(val, int) and not isinstance(val, bool) and 100 <= val < 600:
            return val
    response = getattr(exc, "response", None)
    if response is not None:
        val = getattr(response, "status_code", None)
        if isinstance(val, int) and 100 <= val < 600:
            return val
    return None


def is_rate_limit_error(exc: BaseException) -> bool:
    """True for 429/503-class failures from any vendor."""
    if isinstance(exc, RateLimitedError):
        return True
    if isinstance(exc, ProviderError):
        return exc.status_code in RATE_LIMIT_STATUSES
    if _extract_status(exc) in RATE_LIMIT_STATUSES:
        return True
    message = str(exc).lower()
    return any(sig in message for sig in _RATE_LIMIT_SIGNATURES)


def extract_retry_after(exc: BaseException) -> Optional[float]:
    """Read a server-provided retry hint (seconds) from an exception."""
    hint = getattr(exc, "retry_after_seconds", None)
    if hint is not None:
        return parse_retry_after(hint)

    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None)
    if headers is not None:
        try:
            value = headers.get("retry-after")
        except AttributeError:
            value = None
        parsed = parse_retry_after(value)
        if parsed is not None:
            return parsed

    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        parsed = parse_retry_after(body.get("retryAfter"))
        if parsed is not None:
            return parsed
    return None


async def with_rate_limit_and_retry(
    rate_limiter: RateLimiter,
    key: str,
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    operation_name: str = "API call",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Execute an async operation with rate limiting and retry logic.

    Each attempt is admitted by ``rate_limiter`` under ``key`` and bounded
    by ``policy.request_timeout_seconds``. Only rate-limit-class failures
    are retried; every other error propagates unchanged.

    Args:
        rate_limiter: Shared limiter (``key`` must be configured).
        key: Rate limit key of the provider.
        operation: Zero-argument callable returning an awaitable.
        policy: Retry/backoff/timeout settings.
        operation_name: Label used in log messages.
        sleep: Awaitable sleep used for backoff (injectable for tests).

    Returns:
        The operation's result.
    """

    async def _attempt():
        if policy.request_timeout_seconds is None:
            return await operation()
        try:
            return await asyncio.wait_for(
                operation(), timeout=policy.request_timeout_seconds
            )
        except asyncio.TimeoutError:
            raise ProviderNetworkError(
                f"[{key}] {operation_name} timed out after "
                f"{policy.request_timeout_seconds:g}s",
                vendor=key,
            )

    attempt = 0
    while True:
        try:
            return await rate_limiter.with_rate_limit(key, _attempt)
        except Exception as e:
            if not is_rate_limit_error(e) or attempt >= policy.max_retries:
                if attempt > 0:
                    logger.error(
                        f"[{key}] {operation_name} failed after "
                        f"{attempt + 1} attempts: {sanitize_error(str(e))}"
                    )
                raise

            backoff = policy.compute_backoff(attempt, extract_retry_after(e))
            logger.warning(
                f"[{key}] Rate limited on {operation_name} "
                f"(attempt {attempt + 1}/{policy.max_retries + 1}), "
                f"retrying in {backoff:.2f}s"
            )
            await sleep(backoff)
            attempt += 1


class ResilientProvider(AIProvider):
    """
    Wrapper that adds rate limiting, timeouts and retries to any provider.

    Usage:
        adapter = OpenAIProvider(settings, rate_limiter)
        provider = ResilientProvider(adapter, rate_limiter)
        text = await provider.generate_content("Summarize ...")
    """

    def __init__(
        self,
        provider: AIProvider,
        rate_limiter: RateLimiter,
        policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._provider = provider
        self._rate_limiter = rate_limiter
        self._policy = policy
        self._sleep = sleep

    @property
    def wrapped(self) -> AIProvider:
        """The underlying vendor adapter."""
        return self._provider

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def vendor(self) -> Vendor:
        return self._provider.vendor

    @property
    def provider_name(self) -> str:
        return self._provider.provider_name

    @property
    def model(self) -> str:
        return self._provider.model

    @property
    def rate_limit_key(self) -> str:
        return self._provider.rate_limit_key

    @property
    def supports_multimodal(self) -> bool:
        return self._provider.supports_multimodal

    async def _call(self, operation: Callable[[], Awaitable[T]], name: str) -> T:
        return await with_rate_limit_and_retry(
            self._rate_limiter,
            self.rate_limit_key,
            operation,
            policy=self._policy,
            operation_name=name,
            sleep=self._sleep,
        )

    async def generate_content(self, prompt: str) -> str:
        return await self._call(
            lambda: self._provider.generate_content(prompt), "generate_content"
        )

    async def generate_multimodal_content(
        self, prompt: str, parts: List[ContentPart]
    ) -> str:
        """Reject text-only models before spending a rate limit slot."""
        if any(part.is_image for part in parts) and not self.supports_multimodal:
            raise ModalityMismatchError(
                f"{self.model} does not accept image input. Multi-modal "
                f"content generation requires a vision-capable "
                f"{self.provider_name} model; please update your model in settings.",
                vendor=self.vendor.value,
            )
        return await self._call(
            lambda: self._provider.generate_multimodal_content(prompt, parts),
            "generate_multimodal_content",
        )

    async def is_api_key_valid(self) -> bool:
        try:
            return await self._call(
                self._provider.is_api_key_valid, "is_api_key_valid"
            )
        except Exception as e:
            logger.warning(
                f"{self.provider_name} API key validation failed: "
                f"{sanitize_error(str(e))}"
            )
            return False

    async def close(self) -> None:
        await self._provider.close()
