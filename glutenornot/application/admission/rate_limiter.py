"""
Per-client admission control.

``check`` is read-only and runs before any upstream work. ``commit`` is the
only mutator and runs once per completed scan, so failed attempts never
consume quota. Analysis and barcode scans share one pool per client.
"""

from __future__ import annotations

import asyncio
import time
import weakref
from typing import Callable, Optional

import structlog

from glutenornot.domain.admission.models import (
    RATE_LIMIT,
    RATE_LIMIT_WINDOW_S,
    AdmissionDecision,
    RateRecord,
)
from glutenornot.domain.admission.ports import IRateStore

logger = structlog.get_logger(__name__)


class AdmissionController:
    """
    Fixed-window quota per client identifier.

    Commits are serialized per identifier with an ``asyncio.Lock``, so
    concurrent scans from the same client never lose an increment. Check and
    commit are separate steps: scans that pass ``check`` together at
    ``limit - 1`` may all commit, overshooting by the number in flight.

    Example:
        >>> controller = AdmissionController(InMemoryRateStore())
        >>> decision = await controller.check("203.0.113.7")
        >>> if decision.allowed:
        ...     ...  # do the work
        ...     await controller.commit("203.0.113.7")
    """

    def __init__(
        self,
        store: IRateStore,
        limit: int = RATE_LIMIT,
        window_s: float = RATE_LIMIT_WINDOW_S,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize controller.

        Args:
            store: Rate record storage
            limit: Accepted scans per window
            window_s: Window length in seconds
            clock: Epoch-seconds source (injectable for tests)
        """
        self.store = store
        self.limit = limit
        self.window_s = window_s
        self._clock = clock
        # Locks vanish once no coroutine holds or waits on them
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, client_id: str) -> asyncio.Lock:
        lock = self._locks.get(client_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[client_id] = lock
        return lock

    async def check(self, client_id: str) -> AdmissionDecision:
        """Decide whether a new scan may start. Never mutates state."""
        now = self._clock()
        record = await self.store.get(client_id)

        if record is None or record.is_expired(now, self.window_s):
            return AdmissionDecision.allow()

        if record.count < self.limit:
            return AdmissionDecision.allow()

        reset_in = record.reset_in(now, self.window_s)
        logger.info(
            "Admission denied",
            client_id=client_id,
            count=record.count,
            reset_in_s=round(reset_in),
        )
        return AdmissionDecision.deny(reset_in)

    async def commit(self, client_id: str) -> None:
        """Count one completed scan against the client's window."""
        lock = self._lock_for(client_id)
        async with lock:
            now = self._clock()
            record: Optional[RateRecord] = await self.store.get(client_id)

            if record is None or record.is_expired(now, self.window_s):
                await self.store.set(client_id, RateRecord.opened_at(now))
            else:
                await self.store.set(client_id, record.incremented())

    async def sweep(self) -> int:
        """Drop expired records. Returns how many were removed."""
        removed = await self.store.cleanup_expired(self.window_s, self._clock())
        if removed:
            logger.info("Rate records swept", removed=removed)
        return removed

    async def run_sweeper(self, interval_s: float) -> None:
        """Sweep forever every ``interval_s`` seconds (cancel to stop)."""
        while True:
            await asyncio.sleep(interval_s)
            try:
                await self.sweep()
            except Exception as e:
                logger.warning("Rate record sweep failed", error=str(e))
