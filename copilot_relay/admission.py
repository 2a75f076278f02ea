"""Admission control applied before a request reaches the relay."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from .config import Settings
from .errors import RateLimitExceeded, RequestRejected

logger = logging.getLogger(__name__)


class RateLimiter:
    """Minimum-interval limiter: at most one admitted request per `interval` seconds."""

    def __init__(self, interval: Optional[float], wait: bool = False, clock: Callable[[], float] = time.monotonic):
        self.interval = interval
        self.wait = wait
        self._clock = clock
        self._last: Optional[float] = None

    async def check(self) -> None:
        if not self.interval:
            return

        now = self._clock()
        if self._last is None or now - self._last >= self.interval:
            self._last = now
            return

        remaining = self.interval - (now - self._last)
        if not self.wait:
            logger.warning("Rate limit exceeded, %.1fs until next request is allowed", remaining)
            raise RateLimitExceeded(f"Rate limit exceeded. Retry in {remaining:.0f} seconds.")

        logger.info("Rate limit reached, waiting %.1fs before proceeding", remaining)
        # Reserve the slot before sleeping so concurrent waiters queue up behind it
        self._last = self._last + self.interval
        await asyncio.sleep(remaining)
        logger.info("Rate limit wait completed, proceeding with request")


async def console_prompt(question: str) -> bool:
    answer = await asyncio.to_thread(input, f"{question} [y/N] ")
    return answer.strip().lower() in ("y", "yes")


class ApprovalGate:
    """Holds each request until an operator accepts it out-of-band."""

    def __init__(self, prompt: Callable[[str], Awaitable[bool]] = console_prompt):
        self._prompt = prompt
        self._lock = asyncio.Lock()

    async def await_approval(self) -> None:
        # One question on the console at a time
        async with self._lock:
            accepted = await self._prompt("Accept incoming request?")
        if not accepted:
            logger.info("Request rejected by operator")
            raise RequestRejected("Request rejected")


class AdmissionControl:
    def __init__(self, rate_limiter: RateLimiter, approval: Optional[ApprovalGate] = None):
        self.rate_limiter = rate_limiter
        self.approval = approval

    @classmethod
    def from_settings(cls, settings: Settings) -> "AdmissionControl":
        return cls(
            RateLimiter(settings.RATE_LIMIT_SECONDS, settings.RATE_LIMIT_WAIT),
            ApprovalGate() if settings.MANUAL_APPROVE else None,
        )

    async def check_rate_limit(self) -> None:
        await self.rate_limiter.check()

    async def await_approval(self) -> None:
        if self.approval is not None:
            await self.approval.await_approval()
