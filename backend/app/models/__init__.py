from models.base import Base, async_session, engine, get_session
from models.setting import Setting
from models.bitrix_directory import BitrixDepartment, BitrixGroup, BitrixUser
from models.bitrix_task import BitrixTask, BitrixTaskActive

__all__ = [
    "Base",
    "async_session",
    "engine",
    "get_session",
    "Setting",
    "BitrixDepartment",
    "BitrixGroup",
    "BitrixUser",
    "BitrixTask",
    "BitrixTaskActive",
]
