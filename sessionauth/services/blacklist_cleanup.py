"""Blacklist cleanup service - periodically prunes expired blacklist entries."""

import asyncio
import threading
from typing import Optional

from sessionauth.core import async_session_maker, settings
from sessionauth.core.logging import get_logger
from sessionauth.services.token_lifecycle import TokenLifecycleManager

logger = get_logger("blacklist_cleanup")

# Delay before the first run so startup is not slowed down
INITIAL_DELAY_SECONDS = 60


class BlacklistCleanupService:
    """Background service that sweeps expired refresh-token blacklist entries."""

    _instance: Optional["BlacklistCleanupService"] = None
    _instance_lock: threading.Lock = threading.Lock()
    _task: asyncio.Task | None = None

    def __init__(self, interval_seconds: int | None = None):
        self._running = False
        self._interval_seconds = interval_seconds or settings.blacklist_cleanup_interval_seconds

    @classmethod
    def get_instance(cls) -> "BlacklistCleanupService":
        """Get singleton instance of the cleanup service (thread-safe)."""
        if cls._instance is None:
            with cls._instance_lock:
                # Double-check locking pattern
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @property
    def interval_seconds(self) -> int:
        return self._interval_seconds

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the background cleanup task."""
        if self._running:
            logger.warning("Blacklist cleanup service is already running")
            return

        self._running = True
        BlacklistCleanupService._task = asyncio.create_task(self._cleanup_loop())
        logger.info(f"Blacklist cleanup service started (interval: {self._interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the background cleanup task."""
        self._running = False
        if BlacklistCleanupService._task:
            BlacklistCleanupService._task.cancel()
            try:
                await BlacklistCleanupService._task
            except asyncio.CancelledError:
                pass
            BlacklistCleanupService._task = None
        logger.info("Blacklist cleanup service stopped")

    async def _cleanup_loop(self) -> None:
        """Main loop that periodically sweeps the blacklist."""
        await asyncio.sleep(INITIAL_DELAY_SECONDS)

        while self._running:
            try:
                await self.run_cleanup_now()
            except Exception as e:
                logger.error(f"Error in blacklist cleanup: {e}", exc_info=True)

            await asyncio.sleep(self._interval_seconds)

    async def run_cleanup_now(self) -> int:
        """Run one sweep in its own transaction.

        Returns:
            Number of blacklist entries removed
        """
        async with async_session_maker() as db:
            try:
                removed = await TokenLifecycleManager(db).cleanup()
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        if removed > 0:
            logger.info(f"Blacklist cleanup: removed {removed} expired entries")
        return removed
