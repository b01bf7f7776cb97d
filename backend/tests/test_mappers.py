from __future__ import annotations

from datetime import datetime, timezone

from conftest import make_task
from services.bitrix24.config import DESCRIPTION_MAX_LEN
from services.bitrix24.mappers import (
    map_department,
    map_group,
    map_task,
    map_user,
    parse_datetime,
)


def test_parse_datetime_normalises_to_utc() -> None:
    assert parse_datetime("2024-01-15T10:00:00+03:00") == datetime(2024, 1, 15, 7, 0, tzinfo=timezone.utc)
    assert parse_datetime("2024-01-15T07:00:00Z") == datetime(2024, 1, 15, 7, 0, tzinfo=timezone.utc)


def test_parse_datetime_empty_or_garbage_is_none() -> None:
    assert parse_datetime("") is None
    assert parse_datetime(None) is None
    assert parse_datetime("not a date") is None


def test_map_task_resolves_relations_through_maps() -> None:
    remote = make_task(10, responsibleId="7", createdBy="8", groupId="3")
    fields = map_task(remote, user_map={"7": 100, "8": 101}, group_map={"3": 300})

    assert fields["bitrix_id"] == 10
    assert fields["responsible_id"] == 100
    assert fields["created_by_id"] == 101
    assert fields["group_id"] == 300
    assert fields["status"] == 2


def test_map_task_unmapped_relations_are_left_out() -> None:
    remote = make_task(10, responsibleId="999", createdBy="998", groupId="5")
    fields = map_task(remote, user_map={}, group_map={})

    assert "responsible_id" not in fields
    assert "created_by_id" not in fields
    assert "group_id" not in fields


def test_map_task_skips_empty_and_invalid_dates_independently() -> None:
    remote = make_task(10, deadline="", closedDate="garbage", startDatePlan="2024-02-01T09:00:00+00:00")
    fields = map_task(remote, {}, {})

    assert "deadline" not in fields
    assert "closed_date" not in fields
    assert fields["start_date_plan"] == datetime(2024, 2, 1, 9, 0, tzinfo=timezone.utc)
    assert fields["bitrix_modified"] == datetime(2024, 1, 15, 7, 0, tzinfo=timezone.utc)


def test_map_task_truncates_description() -> None:
    remote = make_task(10, description="x" * (DESCRIPTION_MAX_LEN + 10))
    fields = map_task(remote, {}, {})
    assert len(fields["description"]) == DESCRIPTION_MAX_LEN


def test_map_task_parent_relation_only_when_resolved() -> None:
    remote = make_task(11, parentId="10")

    unresolved = map_task(remote, {}, {})
    assert unresolved["parent_bitrix_id"] == 10
    assert "parent_id" not in unresolved

    resolved = map_task(remote, {}, {}, parent_id=55)
    assert resolved["parent_id"] == 55


def test_map_task_is_idempotent() -> None:
    remote = make_task(12, tags=["urgent"], accomplices=["3", "4"])
    assert map_task(remote, {"1": 1}, {}) == map_task(remote, {"1": 1}, {})


def test_map_user_resolves_known_departments_only() -> None:
    remote = {
        "ID": "7",
        "NAME": "Anna",
        "LAST_NAME": "Ivanova",
        "EMAIL": "anna@example.com",
        "ACTIVE": True,
        "UF_DEPARTMENT": [1, 2, 1],
    }
    fields = map_user(remote, dept_map={"1": 10})

    assert fields["bitrix_id"] == 7
    assert fields["full_name"] == "Anna Ivanova"
    assert fields["departments"] == [10]
    assert fields["active"] is True


def test_map_group_and_department() -> None:
    group = map_group({"ID": "3", "NAME": "Support", "DESCRIPTION": None, "ACTIVE": "N", "OWNER_ID": "1"})
    assert group == {
        "bitrix_id": 3,
        "name": "Support",
        "description": "",
        "active": False,
        "owner_bitrix_id": 1,
    }

    dept = map_department({"ID": "2", "NAME": "Sales", "PARENT": "1", "UF_HEAD": ""})
    assert dept == {"bitrix_id": 2, "name": "Sales", "parent_bitrix_id": 1, "head_bitrix_id": None}


def test_map_task_group_zero_leaves_stored_group_alone() -> None:
    # task moved out of its group remotely: no local row for "0"
    fields = map_task(make_task(10, groupId="0"), user_map={}, group_map={"3": 300})
    assert "group_id" not in fields
