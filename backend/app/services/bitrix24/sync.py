"""SyncManager — Bitrix24 -> local mirror, full and incremental passes.

Full pass:        departments -> groups -> users -> all tasks (ID desc).
Incremental pass: tasks with CHANGED_DATE after (checkpoint - safety window),
                  where checkpoint = max bitrix_modified in the archive.
                  No checkpoint yet -> full task pass.

Re-reading the safety window is expected: every write is an upsert keyed by
bitrix_id. Lookup maps and the active-task cache are rebuilt for each pass
and live only in that pass.

Only one pass runs at a time; run_full()/run_incremental() refuse to start
while another pass holds the lock.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

from models.bitrix_directory import BitrixDepartment, BitrixGroup, BitrixUser
from services.bitrix24 import pagination
from services.bitrix24.client import Bitrix24Client, Bitrix24Error
from services.bitrix24.config import (
    CHANGED_SINCE_FILTER, FINAL_STATUS_DEFAULT,
    METHOD_DEPARTMENTS, METHOD_GROUPS, METHOD_PROFILE, METHOD_TASKS, METHOD_USERS,
    PAGE_DELAY_FULL, PAGE_DELAY_INCREMENTAL, SAFETY_WINDOW_SECONDS,
    TASK_SELECT_FIELDS, WEBHOOK_SETTING_KEY,
)
from services.bitrix24.mappers import external_id, map_department, map_group, map_user
from services.bitrix24.store import BitrixStore, PersistenceError
from services.bitrix24.task_cache import TaskCache, TaskWriter

logger = logging.getLogger("taskmirror.bitrix24.sync")

ClientFactory = Callable[[str | None], Bitrix24Client]


@dataclass(frozen=True)
class SyncOptions:
    request_timeout: float = 60.0
    page_delay: float = PAGE_DELAY_FULL
    incremental_page_delay: float = PAGE_DELAY_INCREMENTAL
    safety_window: timedelta = timedelta(seconds=SAFETY_WINDOW_SECONDS)
    final_status: str = FINAL_STATUS_DEFAULT


@dataclass
class SyncResult:
    mode: str
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    threshold: datetime | None = None
    departments: int = 0
    groups: int = 0
    users: int = 0
    tasks: int = 0
    active_saved: int = 0
    active_removed: int = 0
    failed: int = 0

    def as_dict(self) -> dict:
        return {
            "mode": self.mode,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "threshold": self.threshold.isoformat() if self.threshold else None,
            "departments": self.departments,
            "groups": self.groups,
            "users": self.users,
            "tasks": self.tasks,
            "active_saved": self.active_saved,
            "active_removed": self.active_removed,
            "failed": self.failed,
        }


def format_rfc3339(dt: datetime) -> str:
    """UTC, second precision, 'Z' suffix — what tasks.task.list filters expect."""
    dt = dt.astimezone(timezone.utc) if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    return dt.replace(microsecond=0).isoformat().replace("+00:00", "Z")


class SyncManager:

    def __init__(
        self,
        store: BitrixStore,
        options: SyncOptions | None = None,
        *,
        client_factory: ClientFactory | None = None,
    ):
        self.store = store
        self.options = options or SyncOptions()
        self._client_factory = client_factory or self._default_client
        self._lock = asyncio.Lock()
        self.last_result: SyncResult | None = None
        self.last_error: str | None = None

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    # ─── Entry points (scheduler / API) ───────────────────────────────

    async def run_full(self) -> SyncResult | None:
        """Full sync guarded by the pass lock. Errors are logged, not raised."""
        return await self._run_guarded("full", self.sync_all)

    async def run_incremental(self) -> SyncResult | None:
        """Incremental sync guarded by the pass lock. Errors are logged, not raised."""
        return await self._run_guarded("incremental", self.sync_updates)

    async def _run_guarded(self, mode: str, operation) -> SyncResult | None:
        if self._lock.locked():
            logger.warning("B24 %s sync skipped: another sync pass is running", mode)
            return None

        async with self._lock:
            try:
                result = await operation()
            except Bitrix24Error as exc:
                self.last_error = f"{type(exc).__name__}: {exc}"
                logger.error("B24 %s sync aborted: %s", mode, self.last_error)
                return None
            except Exception as exc:
                self.last_error = f"{type(exc).__name__}: {exc}"
                logger.error("B24 %s sync failed: %s", mode, exc, exc_info=True)
                return None
            self.last_result = result
            self.last_error = None
            return result

    # ─── Full sync ────────────────────────────────────────────────────

    async def sync_all(self) -> SyncResult:
        logger.info("B24 starting full sync...")
        result = SyncResult(mode="full")
        async with await self._open_client() as client:
            dept_map = await self.sync_departments(client, result)
            await self.sync_groups(client, result)
            await self.sync_users(client, result, dept_map=dept_map)
            await self.sync_tasks(client, result)
        result.finished_at = datetime.now(timezone.utc)
        logger.info(
            "B24 full sync completed: %d departments, %d groups, %d users, "
            "%d tasks (%d completed removed from active, %d failed)",
            result.departments, result.groups, result.users,
            result.tasks, result.active_removed, result.failed,
        )
        return result

    async def sync_departments(self, client: Bitrix24Client, result: SyncResult) -> dict[str, int]:
        """Returns the bitrix_id -> local id map built along the way."""
        dept_map: dict[str, int] = {}

        async def handle(page: list[dict]) -> None:
            for remote in page:
                local_id = await self._save(BitrixDepartment, map_department(remote), result)
                if local_id is not None:
                    dept_map[external_id(remote.get("ID"))] = local_id
                    result.departments += 1

        await pagination.walk(
            client, METHOD_DEPARTMENTS, None, handle, page_delay=self.options.page_delay,
        )
        return dept_map

    async def sync_groups(self, client: Bitrix24Client, result: SyncResult) -> None:
        async def handle(page: list[dict]) -> None:
            for remote in page:
                if await self._save(BitrixGroup, map_group(remote), result) is not None:
                    result.groups += 1

        await pagination.walk(
            client, METHOD_GROUPS, None, handle, page_delay=self.options.page_delay,
        )

    async def sync_users(
        self,
        client: Bitrix24Client,
        result: SyncResult,
        *,
        dept_map: dict[str, int] | None = None,
    ) -> None:
        if dept_map is None:
            dept_map = await self.store.load_id_map(BitrixDepartment)

        async def handle(page: list[dict]) -> None:
            for remote in page:
                if await self._save(BitrixUser, map_user(remote, dept_map), result) is not None:
                    result.users += 1

        await pagination.walk(
            client, METHOD_USERS, None, handle, page_delay=self.options.page_delay,
        )

    async def sync_tasks(self, client: Bitrix24Client, result: SyncResult) -> None:
        """Every task, newest ID first."""
        payload = {"order": {"ID": "desc"}, "select": TASK_SELECT_FIELDS}
        await self._walk_tasks(client, payload, result, page_delay=self.options.page_delay)

    # ─── Incremental sync ─────────────────────────────────────────────

    async def get_max_modified_date(self) -> datetime | None:
        """Checkpoint: newest bitrix_modified in the archive, None if empty."""
        return await self.store.max_modified()

    async def sync_updates(self) -> SyncResult:
        checkpoint = await self.get_max_modified_date()
        result = SyncResult(mode="incremental")

        async with await self._open_client() as client:
            if checkpoint is None:
                logger.info("B24 no modified date found (first run?), running full task sync...")
                await self.sync_tasks(client, result)
            else:
                result.threshold = checkpoint - self.options.safety_window
                since = format_rfc3339(result.threshold)
                logger.info(
                    "B24 checking updates since %s (checkpoint %s, %ds safety window)",
                    since, format_rfc3339(checkpoint),
                    int(self.options.safety_window.total_seconds()),
                )
                payload = {
                    "filter": {CHANGED_SINCE_FILTER: since},
                    "select": TASK_SELECT_FIELDS,
                }
                await self._walk_tasks(
                    client, payload, result, page_delay=self.options.incremental_page_delay,
                )

        result.finished_at = datetime.now(timezone.utc)
        if result.tasks:
            logger.info(
                "B24 incremental sync finished: %d tasks updated, %d removed from active, %d failed",
                result.tasks, result.active_removed, result.failed,
            )
        else:
            logger.info("B24 no new updates found")
        return result

    # ─── Connection check ─────────────────────────────────────────────

    async def test_connection(self) -> dict:
        """Call `profile` with the stored webhook. Reports instead of raising."""
        try:
            async with await self._open_client() as client:
                envelope = pagination.decode_envelope(await client.call(METHOD_PROFILE))
        except Bitrix24Error as exc:
            return {"success": False, "error": str(exc)}
        return {"success": True, "data": envelope.result}

    # ─── Helpers ──────────────────────────────────────────────────────

    async def _walk_tasks(
        self,
        client: Bitrix24Client,
        payload: dict,
        result: SyncResult,
        *,
        page_delay: float,
    ) -> None:
        user_map = await self.store.load_id_map(BitrixUser)
        group_map = await self.store.load_id_map(BitrixGroup)
        cache = await TaskCache.load(self.store)
        writer = TaskWriter(
            self.store, user_map, group_map, cache,
            final_status=self.options.final_status,
        )

        await pagination.walk(
            client, METHOD_TASKS, payload, writer.save_page,
            items=pagination.task_items, page_delay=page_delay,
        )

        result.tasks += writer.stats.saved
        result.active_saved += writer.stats.active_saved
        result.active_removed += writer.stats.active_removed
        result.failed += writer.stats.failed
        logger.debug("B24 tasks processed: %s", writer.stats.seen_ids)

    async def _save(self, model, fields: dict, result: SyncResult) -> int | None:
        try:
            return await self.store.upsert(model, fields)
        except PersistenceError as exc:
            result.failed += 1
            logger.error("B24 save error: %s", exc)
            return None

    async def _open_client(self) -> Bitrix24Client:
        """Client for one pass, pointed at the webhook URL stored in settings."""
        webhook_url = await self.store.get_setting(WEBHOOK_SETTING_KEY)
        return self._client_factory(webhook_url)

    def _default_client(self, webhook_url: str | None) -> Bitrix24Client:
        return Bitrix24Client(webhook_url, timeout=self.options.request_timeout)
