"""SyncScheduler — background driver for the Bitrix24 mirror.

On start: waits `warmup` seconds, runs a full sync if the task archive is
empty, then runs an incremental sync every `interval` seconds.
Manual triggers spawn their own background task and return at once; the
SyncManager lock keeps them from overlapping with the loop.
"""
import asyncio
import logging

from models.bitrix_task import BitrixTask
from services.bitrix24.store import BitrixStore
from services.bitrix24.sync import SyncManager

logger = logging.getLogger("taskmirror.bitrix24.scheduler")


class SyncScheduler:

    def __init__(
        self,
        sync_manager: SyncManager,
        store: BitrixStore,
        *,
        warmup: float = 10,
        interval: float = 300,
    ):
        self.sync_manager = sync_manager
        self.store = store
        self.warmup = warmup
        self.interval = interval
        self._running = False
        self._background: set[asyncio.Task] = set()

    async def start(self) -> None:
        self._running = True
        logger.info(
            "SyncScheduler started (warm-up %ds, incremental every %ds)",
            self.warmup, self.interval,
        )

        await asyncio.sleep(self.warmup)
        try:
            await self._initial_sync()
        except Exception as exc:
            logger.error("SyncScheduler initial sync error: %s", exc, exc_info=True)

        while self._running:
            await asyncio.sleep(self.interval)
            if not self._running:
                break
            try:
                await self.sync_manager.run_incremental()
            except Exception as exc:
                logger.error("SyncScheduler cycle error: %s", exc, exc_info=True)

    async def stop(self) -> None:
        self._running = False
        for task in list(self._background):
            task.cancel()
        logger.info("SyncScheduler stopped")

    async def _initial_sync(self) -> None:
        count = await self.store.count(BitrixTask)
        if count == 0:
            logger.info("bitrix_tasks table is empty. Starting initial sync...")
            await self.sync_manager.run_full()
        else:
            logger.info("bitrix_tasks has %d rows, initial sync not needed", count)

    # ─── Manual triggers ──────────────────────────────────────────────

    def trigger_full(self) -> asyncio.Task:
        """Start a full sync in the background."""
        return self._spawn(self.sync_manager.run_full(), "b24_full_sync")

    def trigger_incremental(self) -> asyncio.Task:
        """Start an incremental sync in the background."""
        return self._spawn(self.sync_manager.run_incremental(), "b24_incremental_sync")

    def _spawn(self, coro, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task
