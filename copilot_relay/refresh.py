"""Retry-once-after-refresh around upstream calls that fail with 401."""

import logging
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol

from .credentials import CredentialStore
from .errors import RefreshFailed

logger = logging.getLogger(__name__)


class HTTPResult(Protocol):
    status_code: int


class TokenSource(Protocol):
    async def fetch(self): ...


class RefreshPhase(str, Enum):
    IDLE = "idle"
    FIRST_ATTEMPT = "first_attempt"
    REFRESHING = "refreshing"
    RETRY = "retry"
    DONE = "done"
    FAILED = "failed"


def is_unauthorized(result: HTTPResult) -> bool:
    return result.status_code == 401


async def refresh_credential(store: CredentialStore, source: TokenSource) -> bool:
    """Replace the stored credential with a fresh one. Never raises; returns success."""
    try:
        credential = await source.fetch()
    except RefreshFailed as e:
        logger.warning("Copilot token refresh failed: %s", e.message)
        return False
    store.replace(credential)
    logger.info("Copilot token refreshed")
    return True


class RefreshCoordinator:
    """
    Runs an upstream operation and, on 401, refreshes the credential and runs it
    exactly once more.

    Phases per call: IDLE -> FIRST_ATTEMPT -> (DONE | REFRESHING);
    REFRESHING -> (RETRY | FAILED); RETRY -> DONE. DONE returns the latest
    result, FAILED returns the first (unauthorized) result. Each phase is
    entered at most once, so a call makes at most two attempts and one refresh.
    """

    def __init__(self, refresh: Callable[[], Awaitable[bool]]):
        self._refresh = refresh

    async def run(self, operation: Callable[[], Awaitable[HTTPResult]]) -> HTTPResult:
        phase = RefreshPhase.IDLE
        first: Optional[HTTPResult] = None
        result: Optional[HTTPResult] = None

        while phase not in (RefreshPhase.DONE, RefreshPhase.FAILED):
            if phase is RefreshPhase.IDLE:
                phase = RefreshPhase.FIRST_ATTEMPT
            elif phase is RefreshPhase.FIRST_ATTEMPT:
                first = result = await operation()
                phase = RefreshPhase.REFRESHING if is_unauthorized(first) else RefreshPhase.DONE
            elif phase is RefreshPhase.REFRESHING:
                logger.warning("Got 401, attempting token refresh")
                phase = RefreshPhase.RETRY if await self._refresh() else RefreshPhase.FAILED
            elif phase is RefreshPhase.RETRY:
                result = await operation()
                phase = RefreshPhase.DONE
            logger.debug("Refresh coordinator entered %s", phase.value)

        if phase is RefreshPhase.FAILED:
            return first
        return result
