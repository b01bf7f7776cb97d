"""BitrixStore — record-level access to the local mirror tables.

Every write runs in its own session and commits on its own: the database
serialises single-record writes, there is no transaction spanning a pass.
Lookups are by bitrix_id (unique) or by local id.
"""
import logging
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models.bitrix_task import BitrixTask
from models.setting import Setting
from services.bitrix24.mappers import ensure_utc

logger = logging.getLogger("taskmirror.bitrix24.store")


class PersistenceError(Exception):
    """A single record could not be written. The pass goes on."""


class BitrixStore:

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_setting(self, key: str) -> str | None:
        async with self.session_factory() as session:
            stmt = select(Setting.value).where(Setting.key == key)
            value = (await session.execute(stmt)).scalar_one_or_none()
            return value or None

    async def load_id_map(self, model) -> dict[str, int]:
        """bitrix_id -> local id for every row of `model`."""
        async with self.session_factory() as session:
            result = await session.execute(select(model.bitrix_id, model.id))
            return {str(bitrix_id): local_id for bitrix_id, local_id in result.all()}

    async def find_id(self, model, bitrix_id: int | str | None) -> int | None:
        if bitrix_id in (None, "", 0, "0"):
            return None
        try:
            bitrix_id = int(bitrix_id)
        except (TypeError, ValueError):
            return None
        try:
            async with self.session_factory() as session:
                stmt = select(model.id).where(model.bitrix_id == bitrix_id)
                return (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"{model.__tablename__} lookup bitrix_id={bitrix_id}: {exc}"
            ) from exc

    async def upsert(self, model, fields: dict, record_id: int | None = None) -> int:
        """Create or update the row for fields["bitrix_id"]; returns local id.

        `record_id` is a known local id (e.g. from an in-memory index); if
        that row is gone the lookup falls back to bitrix_id.
        """
        bitrix_id = fields.get("bitrix_id")
        if bitrix_id is None:
            raise PersistenceError(f"{model.__tablename__}: record without bitrix_id")

        try:
            async with self.session_factory() as session:
                record = await session.get(model, record_id) if record_id else None
                if record is None:
                    stmt = select(model).where(model.bitrix_id == bitrix_id)
                    record = (await session.execute(stmt)).scalar_one_or_none()
                if record is None:
                    record = model()
                    session.add(record)

                for column, value in fields.items():
                    setattr(record, column, value)

                await session.commit()
                return record.id
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"{model.__tablename__} bitrix_id={bitrix_id}: {exc}"
            ) from exc

    async def delete(self, model, record_id: int) -> bool:
        try:
            async with self.session_factory() as session:
                result = await session.execute(delete(model).where(model.id == record_id))
                await session.commit()
                return bool(result.rowcount)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"{model.__tablename__} id={record_id}: {exc}") from exc

    async def count(self, model) -> int:
        async with self.session_factory() as session:
            stmt = select(func.count()).select_from(model)
            return (await session.execute(stmt)).scalar() or 0

    async def max_modified(self) -> datetime | None:
        """Largest bitrix_modified across the task archive (the checkpoint)."""
        async with self.session_factory() as session:
            stmt = select(func.max(BitrixTask.bitrix_modified))
            value = (await session.execute(stmt)).scalar()
            return ensure_utc(value) if value else None
