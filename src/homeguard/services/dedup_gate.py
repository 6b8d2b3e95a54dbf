"""
Deduplication Gate

Rejects sensor events whose id was already admitted within the retention
window. Check-and-mark for one id is atomic; a background sweep drops
expired ids on its own schedule.
"""

from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import Optional
import asyncio
import logging
import threading

logger = logging.getLogger(__name__)


@dataclass
class DedupConfig:
    """Retention rules for processed event ids."""
    retention_sec: int = 600        # 10 minutes
    sweep_interval_sec: int = 60


class DeduplicationGate:
    """Time-bounded memory of processed event ids.

    Thread-safe. The sweeper runs as an asyncio task between start()/stop().
    """

    def __init__(self, config: Optional[DedupConfig] = None):
        self.config = config or DedupConfig()

        # event_id -> first seen
        self._first_seen: dict[str, datetime] = {}
        self._lock = threading.Lock()

        self._sweeper: Optional[asyncio.Task] = None

    @property
    def retention(self) -> timedelta:
        return timedelta(seconds=self.config.retention_sec)

    def __len__(self) -> int:
        with self._lock:
            return len(self._first_seen)

    def _is_live(self, event_id: str, now: datetime) -> bool:
        # Caller holds the lock
        seen_at = self._first_seen.get(event_id)
        if seen_at is None:
            return False
        return now - seen_at <= self.retention

    # =========================================================================
    # Lookups
    # =========================================================================

    def is_duplicate(self, event_id: str, now: Optional[datetime] = None) -> bool:
        """Check if ``event_id`` was marked within the retention window."""
        now = now or datetime.now(timezone.utc)
        with self._lock:
            return self._is_live(event_id, now)

    def mark_processed(self, event_id: str, now: Optional[datetime] = None) -> None:
        """Record ``event_id`` as processed. The first live mark wins."""
        now = now or datetime.now(timezone.utc)
        with self._lock:
            if not self._is_live(event_id, now):
                self._first_seen[event_id] = now

    def try_admit(self, event_id: str, now: Optional[datetime] = None) -> bool:
        """Atomically check and mark ``event_id``.

        Returns:
            True if the id was admitted (not a duplicate), False otherwise
        """
        now = now or datetime.now(timezone.utc)
        with self._lock:
            if self._is_live(event_id, now):
                return False
            self._first_seen[event_id] = now
            return True

    # =========================================================================
    # Sweep
    # =========================================================================

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Drop ids older than the retention window.

        Returns:
            Number of ids removed
        """
        now = now or datetime.now(timezone.utc)
        with self._lock:
            expired = [
                event_id for event_id, seen_at in self._first_seen.items()
                if now - seen_at > self.retention
            ]
            for event_id in expired:
                del self._first_seen[event_id]

        if expired:
            logger.debug(f"[DEDUP] Swept {len(expired)} expired event ids")
        return len(expired)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.sweep_interval_sec)
            self.sweep()

    def start(self) -> None:
        """Start the background sweeper on the running event loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())
        logger.info(
            f"[DEDUP] Sweeper started (every {self.config.sweep_interval_sec}s, "
            f"retention {self.config.retention_sec}s)"
        )

    async def stop(self) -> None:
        """Stop the background sweeper."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        logger.info("[DEDUP] Sweeper stopped")

    @property
    def is_sweeping(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def reset(self) -> None:
        """Forget all processed ids."""
        with self._lock:
            self._first_seen.clear()
