"""Pure translation of Bitrix24 entities into local column assignments.

No I/O. Every function returns a dict of column -> value; a key that is
absent means "leave the stored value alone" (unset date, unresolved
relation). Same input always gives the same output.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from services.bitrix24.config import DESCRIPTION_MAX_LEN

# remote task key -> local date column
TASK_DATE_FIELDS = {
    "deadline": "deadline",
    "createdDate": "created_date",
    "changedDate": "bitrix_modified",
    "statusChangedDate": "status_changed_date",
    "startDatePlan": "start_date_plan",
    "endDatePlan": "end_date_plan",
    "closedDate": "closed_date",
}

# remote task key -> local integer column
TASK_INT_FIELDS = {
    "status": "status",
    "priority": "priority",
    "commentsCount": "comments_count",
    "timeEstimate": "time_estimate",
    "timeSpentInLogs": "time_spent",
}

TASK_JSON_FIELDS = {
    "tags": "tags",
    "accomplices": "accomplices",
    "auditors": "auditors",
    "ufCrmTask": "uf_crm_task",
}


def ensure_utc(dt: datetime) -> datetime:
    """Naive datetimes are treated as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_datetime(value: Any) -> datetime | None:
    """Parse a Bitrix24 date string (ISO 8601 / ATOM). Empty or bad -> None."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def to_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def truncate(text: Any, limit: int = DESCRIPTION_MAX_LEN) -> str:
    text = "" if text is None else str(text)
    return text[:limit] if len(text) > limit else text


def external_id(value: Any) -> str:
    """Normalise a Bitrix24 ID for map lookups ("12" and 12 are the same)."""
    return "" if value is None else str(value).strip()


# ─── Directory ────────────────────────────────────────────────────────

def map_department(remote: dict) -> dict:
    return {
        "bitrix_id": to_int(remote.get("ID")),
        "name": str(remote.get("NAME") or ""),
        "parent_bitrix_id": to_int(remote.get("PARENT")),
        "head_bitrix_id": to_int(remote.get("UF_HEAD")),
    }


def map_group(remote: dict) -> dict:
    return {
        "bitrix_id": to_int(remote.get("ID")),
        "name": str(remote.get("NAME") or ""),
        "description": truncate(remote.get("DESCRIPTION")),
        "active": remote.get("ACTIVE") == "Y",
        "owner_bitrix_id": to_int(remote.get("OWNER_ID")),
    }


def map_user(remote: dict, dept_map: dict[str, int]) -> dict:
    """Departments not (yet) mirrored locally are dropped from the list."""
    full_name = f"{remote.get('NAME') or ''} {remote.get('LAST_NAME') or ''}".strip()

    departments = []
    for dept_id in remote.get("UF_DEPARTMENT") or []:
        local_id = dept_map.get(external_id(dept_id))
        if local_id is not None and local_id not in departments:
            departments.append(local_id)

    active = remote.get("ACTIVE")
    return {
        "bitrix_id": to_int(remote.get("ID")),
        "full_name": full_name,
        "email": remote.get("EMAIL") or None,
        "work_position": remote.get("WORK_POSITION") or None,
        "active": active if isinstance(active, bool) else active in ("Y", "1", 1),
        "departments": departments,
    }


# ─── Tasks ────────────────────────────────────────────────────────────

def map_task(
    remote: dict,
    user_map: dict[str, int],
    group_map: dict[str, int],
    parent_id: int | None = None,
) -> dict:
    """Map one tasks.task.list item.

    `parent_id` is the local id of the parent row in the target table, when
    the caller could resolve it; otherwise the parent relation is left out.
    """
    fields: dict[str, Any] = {
        "bitrix_id": to_int(remote.get("id")),
        "parent_bitrix_id": to_int(remote.get("parentId")),
        "title": truncate(remote.get("title"), 1000),
        "description": truncate(remote.get("description")),
    }

    for key, column in TASK_INT_FIELDS.items():
        value = to_int(remote.get(key))
        if value is not None:
            fields[column] = value

    for key, column in TASK_JSON_FIELDS.items():
        fields[column] = remote.get(key)

    responsible = user_map.get(external_id(remote.get("responsibleId")))
    if responsible is not None:
        fields["responsible_id"] = responsible
    created_by = user_map.get(external_id(remote.get("createdBy")))
    if created_by is not None:
        fields["created_by_id"] = created_by
    group = group_map.get(external_id(remote.get("groupId")))
    if group is not None:
        fields["group_id"] = group

    if parent_id is not None:
        fields["parent_id"] = parent_id

    for key, column in TASK_DATE_FIELDS.items():
        dt = parse_datetime(remote.get(key))
        if dt is not None:
            fields[column] = dt

    return fields
