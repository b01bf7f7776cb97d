"""Bitrix24 tasks: full archive + active-only copy.

bitrix_tasks        — every task ever seen, one row per bitrix_id, never deleted.
bitrix_tasks_active — same columns, only tasks whose status is not final.
                      Kept as a separate table so the UI can query (and
                      permission) it independently of the archive.
"""
from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from models.base import Base


class TaskColumnsMixin:
    id: Mapped[int] = mapped_column(primary_key=True)
    bitrix_id: Mapped[int] = mapped_column(unique=True)
    parent_bitrix_id: Mapped[int | None] = mapped_column(default=None)

    title: Mapped[str] = mapped_column(String(1000), default="")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    status: Mapped[int | None] = mapped_column(default=None)
    priority: Mapped[int | None] = mapped_column(default=None)
    comments_count: Mapped[int | None] = mapped_column(default=None)
    time_estimate: Mapped[int | None] = mapped_column(default=None)
    time_spent: Mapped[int | None] = mapped_column(default=None)

    responsible_id: Mapped[int | None] = mapped_column(
        ForeignKey("bitrix_users.id", ondelete="SET NULL"), default=None,
    )
    created_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("bitrix_users.id", ondelete="SET NULL"), default=None,
    )
    group_id: Mapped[int | None] = mapped_column(
        ForeignKey("bitrix_groups.id", ondelete="SET NULL"), default=None,
    )

    created_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    status_changed_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    bitrix_modified: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    start_date_plan: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    end_date_plan: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    closed_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    tags: Mapped[list | dict | None] = mapped_column(JSON, default=None)
    accomplices: Mapped[list | dict | None] = mapped_column(JSON, default=None)
    auditors: Mapped[list | dict | None] = mapped_column(JSON, default=None)
    uf_crm_task: Mapped[list | dict | None] = mapped_column(JSON, default=None)

    @declared_attr
    def parent_id(cls) -> Mapped[int | None]:
        # self relation inside the same table
        return mapped_column(
            ForeignKey(f"{cls.__tablename__}.id", ondelete="SET NULL"), default=None,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} #{self.bitrix_id} status={self.status}>"


class BitrixTask(TaskColumnsMixin, Base):
    __tablename__ = "bitrix_tasks"

    __table_args__ = (
        Index("ix_bitrix_tasks_modified", "bitrix_modified"),
    )


class BitrixTaskActive(TaskColumnsMixin, Base):
    __tablename__ = "bitrix_tasks_active"
