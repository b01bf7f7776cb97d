"""TaskWriter — keeps the archive and the active-task copy consistent.

For every task seen in a pass:
1. the archive row (bitrix_tasks) is always created/updated;
2. a final-status task loses its bitrix_tasks_active row;
3. any other task gets its bitrix_tasks_active row created/updated.

The archive write always happens first, so an interrupted pass leaves the
archive correct and only the active copy stale until the next pass.

TaskCache maps bitrix_id -> bitrix_tasks_active.id for the rows that exist
right now. It is loaded once per pass and never shared between passes.
"""
import logging
from dataclasses import dataclass, field

from models.bitrix_task import BitrixTask, BitrixTaskActive
from services.bitrix24.mappers import external_id, map_task
from services.bitrix24.store import BitrixStore, PersistenceError

logger = logging.getLogger("taskmirror.bitrix24.tasks")


class TaskCache:
    """In-memory index of the active-task table."""

    def __init__(self, active: dict[str, int] | None = None):
        self.active: dict[str, int] = dict(active or {})

    @classmethod
    async def load(cls, store: BitrixStore) -> "TaskCache":
        cache = cls(await store.load_id_map(BitrixTaskActive))
        logger.info("B24 task cache loaded: %d active tasks", len(cache))
        return cache

    def get(self, bitrix_id) -> int | None:
        return self.active.get(external_id(bitrix_id))

    def put(self, bitrix_id, local_id: int) -> None:
        self.active[external_id(bitrix_id)] = local_id

    def discard(self, bitrix_id) -> None:
        self.active.pop(external_id(bitrix_id), None)

    def __contains__(self, bitrix_id) -> bool:
        return external_id(bitrix_id) in self.active

    def __len__(self) -> int:
        return len(self.active)


@dataclass
class TaskWriteStats:
    saved: int = 0
    active_saved: int = 0
    active_removed: int = 0
    failed: int = 0
    seen_ids: list[str] = field(default_factory=list)


class TaskWriter:

    def __init__(
        self,
        store: BitrixStore,
        user_map: dict[str, int],
        group_map: dict[str, int],
        cache: TaskCache,
        *,
        final_status: str = "5",
    ):
        self.store = store
        self.user_map = user_map
        self.group_map = group_map
        self.cache = cache
        self.final_status = str(final_status)
        self.stats = TaskWriteStats()

    async def save_page(self, tasks: list[dict]) -> None:
        for task in tasks:
            await self.save(task)

    async def save(self, task: dict) -> None:
        bitrix_id = external_id(task.get("id"))
        is_final = str(task.get("status", "")).strip() == self.final_status
        self.stats.seen_ids.append(bitrix_id)

        # 1. Archive, regardless of status
        self._log_unresolved(task)
        try:
            archive_parent = await self.store.find_id(BitrixTask, task.get("parentId"))
            fields = map_task(task, self.user_map, self.group_map, parent_id=archive_parent)
            await self.store.upsert(BitrixTask, fields)
            self.stats.saved += 1
        except PersistenceError as exc:
            self.stats.failed += 1
            logger.error("B24 error saving task %s to archive: %s", bitrix_id, exc)

        # 2. Active copy
        if is_final:
            await self._drop_active(bitrix_id)
            return

        active_fields = map_task(
            task, self.user_map, self.group_map,
            parent_id=self.cache.get(task.get("parentId")),
        )
        try:
            local_id = await self.store.upsert(
                BitrixTaskActive, active_fields, record_id=self.cache.get(bitrix_id),
            )
        except PersistenceError as exc:
            self.stats.failed += 1
            logger.error("B24 error saving task %s to active cache: %s", bitrix_id, exc)
            return
        self.cache.put(bitrix_id, local_id)
        self.stats.active_saved += 1

    async def _drop_active(self, bitrix_id: str) -> None:
        local_id = self.cache.get(bitrix_id)
        if local_id is None:
            return
        try:
            await self.store.delete(BitrixTaskActive, local_id)
        except PersistenceError as exc:
            self.stats.failed += 1
            logger.error("B24 error removing task %s from active cache: %s", bitrix_id, exc)
            return
        self.cache.discard(bitrix_id)
        self.stats.active_removed += 1
        logger.debug("B24 task %s completed, removed from active cache", bitrix_id)

    def _log_unresolved(self, task: dict) -> None:
        responsible = external_id(task.get("responsibleId"))
        if responsible and responsible != "0" and responsible not in self.user_map:
            logger.debug(
                "B24 task %s: responsible %s not in user map (%d users)",
                task.get("id"), responsible, len(self.user_map),
            )
