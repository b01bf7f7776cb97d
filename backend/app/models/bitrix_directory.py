"""Bitrix24 directory mirror: departments, workgroups, users.

One row per Bitrix24 ID. Rows are created or updated by the sync engine,
never deleted.
"""
from sqlalchemy import JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, TimestampMixin


class BitrixDepartment(TimestampMixin, Base):
    __tablename__ = "bitrix_departments"

    id: Mapped[int] = mapped_column(primary_key=True)
    bitrix_id: Mapped[int] = mapped_column(unique=True)
    name: Mapped[str] = mapped_column(String(255))
    parent_bitrix_id: Mapped[int | None] = mapped_column(default=None)
    head_bitrix_id: Mapped[int | None] = mapped_column(default=None)

    def __repr__(self) -> str:
        return f"<BitrixDepartment #{self.bitrix_id} {self.name}>"


class BitrixGroup(TimestampMixin, Base):
    __tablename__ = "bitrix_groups"

    id: Mapped[int] = mapped_column(primary_key=True)
    bitrix_id: Mapped[int] = mapped_column(unique=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, default=None)
    active: Mapped[bool] = mapped_column(default=True)
    owner_bitrix_id: Mapped[int | None] = mapped_column(default=None)

    def __repr__(self) -> str:
        return f"<BitrixGroup #{self.bitrix_id} {self.name}>"


class BitrixUser(TimestampMixin, Base):
    __tablename__ = "bitrix_users"

    id: Mapped[int] = mapped_column(primary_key=True)
    bitrix_id: Mapped[int] = mapped_column(unique=True)
    full_name: Mapped[str] = mapped_column(String(255), default="")
    email: Mapped[str | None] = mapped_column(String(255), default=None)
    work_position: Mapped[str | None] = mapped_column(String(255), default=None)
    active: Mapped[bool] = mapped_column(default=True)
    departments: Mapped[list] = mapped_column(JSON, default=list)  # local department ids

    def __repr__(self) -> str:
        return f"<BitrixUser #{self.bitrix_id} {self.full_name}>"
