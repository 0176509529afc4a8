# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""Periodic background refresh of the trust and policy snapshots.

Runs a single asyncio task that, every ``interval`` seconds, re-downloads
the signer certificates and the settings table and publishes them through
the :class:`~app.dgc.context.VerifierContext`.

* **Single flight.**  A cycle never overlaps another; a cycle requested
  while one is in flight is skipped (``refresh_once`` returns ``False``).
* **Bounded retries.**  Each half (trust, policy) is attempted up to
  ``max_attempts`` times with exponential backoff on :class:`RefreshError`.
  Every HTTP call is bounded by the client timeout.
* **Availability over freshness.**  A half that still fails is logged and
  its previous snapshot keeps serving.  The halves are independent: a
  failed settings download does not discard freshly downloaded
  certificates.
* **Cancellation.**  ``stop()`` cancels an in-flight cycle.

The initial refresh at startup is different: :meth:`refresh_initial`
propagates failures so the service refuses to start without a trust set
and a revocation list.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from app.config import REFRESH_BACKOFF_BASE, REFRESH_INTERVAL_SECONDS, REFRESH_MAX_ATTEMPTS
from app.dgc.context import VerifierContext, get_verifier_context
from app.dgc.exceptions import ConfigError, RefreshError

logger = logging.getLogger("dgc.refresher")

__all__ = [
    "BackgroundRefresher",
    "get_refresher",
    "reset_refresher",
]

T = TypeVar("T")


class BackgroundRefresher:
    """Asynchronous background worker for trust and policy refresh.

    Parameters
    ----------
    context : VerifierContext
        Owner of the stores to refresh.
    interval : float
        Seconds between refresh cycles.
    max_attempts : int
        Attempts per half-cycle before giving up until the next cycle.
    backoff_base : float
        Delay before the second attempt; doubles on each further attempt.
    """

    def __init__(
        self,
        context: VerifierContext,
        interval: float = REFRESH_INTERVAL_SECONDS,
        max_attempts: int = REFRESH_MAX_ATTEMPTS,
        backoff_base: float = REFRESH_BACKOFF_BASE,
    ) -> None:
        self._context = context
        self._interval = interval
        self._max_attempts = max(1, max_attempts)
        self._backoff_base = backoff_base

        self._lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._running: bool = False
        self._task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def refresh_initial(self) -> None:
        """Populate both snapshots, propagating any failure.

        Raises
        ------
        RefreshError
            If a feed stays unreachable after all attempts.
        ConfigError
            If the settings table lacks the revocation list.
        """
        async with self._lock:
            logger.info("Initial refresh starting")
            await self._with_retries("trust", self._context.trust_store.refresh)
            await self._with_retries("policy", self._context.settings_store.refresh)
            logger.info("Initial refresh complete")

    async def refresh_once(self) -> bool:
        """Run one refresh cycle unless one is already in flight.

        Returns
        -------
        bool
            ``False`` if the cycle was skipped because another is running.
        """
        if self._lock.locked():
            logger.info("Refresh already in flight, skipping cycle")
            return False

        async with self._lock:
            try:
                snapshot = await self._with_retries("trust", self._context.trust_store.refresh)
                logger.info("Trust snapshot published: %d certificates", len(snapshot))
            except RefreshError:
                logger.exception("Trust refresh failed; previous snapshot kept")

            try:
                await self._with_retries("policy", self._context.settings_store.refresh)
                logger.info("Policy snapshot published")
            except (RefreshError, ConfigError):
                logger.exception("Policy refresh failed; previous snapshot kept")
        return True

    async def start(self) -> None:
        """Start the periodic worker task.

        Idempotent: calling ``start()`` when already running is a no-op.
        """
        if self._running:
            return
        self._running = True
        self._stop_event.clear()
        self._task = asyncio.create_task(self._worker())
        logger.info("Background refresher started (interval=%.0fs)", self._interval)

    async def stop(self) -> None:
        """Stop the worker, cancelling an in-flight cycle."""
        self._running = False
        self._stop_event.set()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Background refresher stopped")

    # ------------------------------------------------------------------
    # Internal worker
    # ------------------------------------------------------------------

    async def _worker(self) -> None:
        while self._running:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
            if not self._running:
                break
            try:
                await self.refresh_once()
            except Exception:
                logger.exception("Unexpected error in refresh cycle")

    async def _with_retries(self, name: str, operation: Callable[[], Awaitable[T]]) -> T:
        for attempt in range(1, self._max_attempts + 1):
            try:
                return await operation()
            except RefreshError as exc:
                if attempt == self._max_attempts:
                    raise
                delay = self._backoff_base * (2 ** (attempt - 1))
                logger.warning(
                    "%s refresh attempt %d/%d failed (%s); retrying in %.2fs",
                    name, attempt, self._max_attempts, exc.message, delay,
                )
                await asyncio.sleep(delay)


# =============================================================================
# Module-level singleton
# =============================================================================

_refresher: Optional[BackgroundRefresher] = None


def get_refresher() -> BackgroundRefresher:
    """Get the module-level refresher singleton bound to the verifier context."""
    global _refresher
    if _refresher is None:
        _refresher = BackgroundRefresher(context=get_verifier_context())
    return _refresher


def reset_refresher() -> None:
    """Reset the module-level refresher singleton (for testing)."""
    global _refresher
    _refresher = None
