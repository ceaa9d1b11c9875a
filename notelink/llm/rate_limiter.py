"""
Per-vendor request rate limiter for NoteLink AI providers.

Each vendor key gets a fixed window of ``max_requests`` admissions per
``window_seconds``. Calls over quota are parked in a FIFO queue instead
of failing. One RateLimiter is shared by all providers of a process; it
is created at the composition root and injected, never imported as a
global.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Deque, Dict, Optional, TypeVar

from .errors import ProviderConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RateLimitConfig:
    """Quota for one vendor key."""

    vendor: str
    max_requests: int
    window_seconds: float


@dataclass
class _RateLimitState:
    """Mutable window state for one vendor key."""

    count: int = 0
    window_start: float = 0.0
    waiters: Deque[asyncio.Future] = field(default_factory=deque)
    wakeup: Optional[asyncio.TimerHandle] = None


@dataclass(frozen=True)
class RateLimitSnapshot:
    """Read-only view of a vendor's limiter state."""

    vendor: str
    count: int
    window_start: float
    queued: int
    max_requests: int
    window_seconds: float

    @property
    def saturated(self) -> bool:
        return self.count >= self.max_requests and self.queued > 0


class RateLimiter:
    """
    Fixed-window rate limiter with a FIFO wait queue per vendor.

    The window resets lazily: when a call (or a queued wake-up) finds that
    ``window_seconds`` have elapsed since ``window_start``, the count drops
    to zero and the window restarts at "now". This admits up to
    ``2 * max_requests`` calls in a short span straddling a reset.

    All state mutation happens without awaiting in between, so the
    single-threaded event loop needs no lock.

    Usage:
        limiter = RateLimiter()
        limiter.configure("google", max_requests=60, window_seconds=60)
        text = await limiter.with_rate_limit("google", lambda: call())
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._configs: Dict[str, RateLimitConfig] = {}
        self._states: Dict[str, _RateLimitState] = {}

    def configure(
        self, vendor: str, max_requests: int, window_seconds: float
    ) -> None:
        """
        Register (or replace) the quota for a vendor key.

        Safe to call repeatedly; the last call's parameters win. Existing
        counts and queued callers are kept.
        """
        if max_requests <= 0:
            raise ProviderConfigurationError(
                f"max_requests must be positive for '{vendor}', got {max_requests}"
            )
        if window_seconds <= 0:
            raise ProviderConfigurationError(
                f"window_seconds must be positive for '{vendor}', got {window_seconds}"
            )

        self._configs[vendor] = RateLimitConfig(
            vendor=vendor,
            max_requests=max_requests,
            window_seconds=window_seconds,
        )
        if vendor not in self._states:
            self._states[vendor] = _RateLimitState(window_start=self._clock())
        else:
            self._release_waiters(vendor)

        logger.debug(
            f"Rate limit for '{vendor}': {max_requests} requests / "
            f"{window_seconds:g}s"
        )

    def is_configured(self, vendor: str) -> bool:
        return vendor in self._configs

    async def with_rate_limit(
        self, vendor: str, operation: Callable[[], Awaitable[T]]
    ) -> T:
        """
        Run ``operation`` once the vendor's quota admits it.

        Args:
            vendor: Vendor key previously passed to configure().
            operation: Zero-argument callable returning an awaitable.

        Returns:
            The operation's result.

        Raises:
            ProviderConfigurationError: If the vendor was never configured.
            Exception: Whatever the operation raises (not retried here).
        """
        config = self._configs.get(vendor)
        if config is None:
            raise ProviderConfigurationError(
                f"No rate limit configuration found for provider: {vendor}"
            )

        state = self._states[vendor]
        self._reclaim_window(state, config)

        if state.count < config.max_requests and not state.waiters:
            state.count += 1
        else:
            await self._wait_for_slot(vendor, state)

        try:
            return await operation()
        finally:
            self._release_waiters(vendor)

    async def _wait_for_slot(self, vendor: str, state: _RateLimitState) -> None:
        """Park the caller until a releaser admits it (count already taken)."""
        waiter = asyncio.get_running_loop().create_future()
        state.waiters.append(waiter)
        logger.debug(
            f"Rate limit reached for '{vendor}', queued "
            f"(position {len(state.waiters)})"
        )
        self._arm_wakeup(vendor)

        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Admitted just before cancellation: hand the turn on.
                self._release_waiters(vendor)
            raise

    def _reclaim_window(
        self, state: _RateLimitState, config: RateLimitConfig
    ) -> None:
        now = self._clock()
        if now - state.window_start >= config.window_seconds:
            state.count = 0
            state.window_start = now

    def _release_waiters(self, vendor: str) -> None:
        """Admit queued callers in arrival order while capacity allows."""
        config = self._configs.get(vendor)
        state = self._states.get(vendor)
        if config is None or state is None:
            return

        self._reclaim_window(state, config)

        while state.waiters and state.count < config.max_requests:
            waiter = state.waiters.popleft()
            if waiter.done():
                continue
            state.count += 1
            waiter.set_result(None)

        if state.waiters:
            self._arm_wakeup(vendor)

    def _arm_wakeup(self, vendor: str) -> None:
        """Schedule a release attempt for the end of the current window."""
        state = self._states[vendor]
        if state.wakeup is not None:
            return

        config = self._configs[vendor]
        delay = max(state.window_start + config.window_seconds - self._clock(), 0.0)
        loop = asyncio.get_running_loop()
        state.wakeup = loop.call_later(delay, self._on_wakeup, vendor)

    def _on_wakeup(self, vendor: str) -> None:
        state = self._states.get(vendor)
        if state is None:
            return
        state.wakeup = None
        self._release_waiters(vendor)

    def snapshot(self, vendor: str) -> RateLimitSnapshot:
        """
        Current state for a vendor key.

        Raises:
            ProviderConfigurationError: If the vendor was never configured.
        """
        config = self._configs.get(vendor)
        if config is None:
            raise ProviderConfigurationError(
                f"No rate limit configuration found for provider: {vendor}"
            )
        state = self._states[vendor]
        return RateLimitSnapshot(
            vendor=vendor,
            count=state.count,
            window_start=state.window_start,
            queued=sum(1 for w in state.waiters if not w.done()),
            max_requests=config.max_requests,
            window_seconds=config.window_seconds,
        )

    def clear(self) -> None:
        """Drop all rate limiting state and configs (for testing)."""
        for state in self._states.values():
            if state.wakeup is not None:
                state.wakeup.cancel()
            for waiter in state.waiters:
                if not waiter.done():
                    waiter.cancel()
        self._states.clear()
        self._configs.clear()
