"""Bitrix24 mirror module.

Entry point: Bitrix24Module. Builds the store, sync manager and scheduler
from Settings and starts the background loop.
"""
import asyncio
import logging
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import Settings
from services.bitrix24.scheduler import SyncScheduler
from services.bitrix24.store import BitrixStore
from services.bitrix24.sync import SyncManager, SyncOptions

logger = logging.getLogger("taskmirror.bitrix24")


def options_from_settings(settings: Settings) -> SyncOptions:
    return SyncOptions(
        request_timeout=settings.BITRIX24_REQUEST_TIMEOUT,
        page_delay=settings.BITRIX24_PAGE_DELAY,
        incremental_page_delay=settings.BITRIX24_PAGE_DELAY / 2,
        safety_window=timedelta(seconds=settings.BITRIX24_SAFETY_WINDOW),
        final_status=settings.BITRIX24_FINAL_STATUS,
    )


class Bitrix24Module:
    """Main orchestrator: wiring + lifecycle of the mirror."""

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.store = BitrixStore(session_factory)
        self.sync_manager = SyncManager(self.store, options_from_settings(settings))
        self.scheduler = SyncScheduler(
            self.sync_manager,
            self.store,
            warmup=settings.BITRIX24_SYNC_WARMUP,
            interval=settings.BITRIX24_SYNC_INTERVAL,
        )
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        logger.info("Bitrix24 module starting...")

        conn = await self.sync_manager.test_connection()
        if conn.get("success"):
            logger.info("Bitrix24 connection OK")
        else:
            logger.warning("Bitrix24 connection failed: %s", conn.get("error"))

        self._task = asyncio.create_task(self.scheduler.start(), name="b24_sync_scheduler")

    async def stop(self) -> None:
        logger.info("Bitrix24 module stopping...")
        await self.scheduler.stop()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Bitrix24 module stopped")
