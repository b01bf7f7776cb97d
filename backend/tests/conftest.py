"""
Fixtures: throwaway SQLite database per test + fake Bitrix24 portal.

The fake portal is an httpx.MockTransport handler, so the real
Bitrix24Client (URL building, status handling) is exercised end to end.
"""
import json
import os
from datetime import datetime
from typing import AsyncGenerator

# Settings are read at import time by models.base
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from models import Base, Setting
from services.bitrix24.client import Bitrix24Client
from services.bitrix24.store import BitrixStore
from services.bitrix24.sync import SyncManager, SyncOptions

WEBHOOK_URL = "https://portal.example.com/rest/1/secret"


class FakeBitrix:
    """In-memory Bitrix24 portal answering the list methods with pagination."""

    def __init__(self, page_size: int = 50):
        self.page_size = page_size
        self.departments: list[dict] = []
        self.groups: list[dict] = []
        self.users: list[dict] = []
        self.tasks: list[dict] = []
        self.requests: list[tuple[str, dict]] = []
        self.fail_with: int | None = None

    def calls(self, method: str) -> list[dict]:
        return [body for m, body in self.requests if m == method]

    def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.url.path.rsplit("/", 1)[-1]
        body = json.loads(request.content or b"{}")
        self.requests.append((method, body))

        if self.fail_with:
            return httpx.Response(self.fail_with, text="portal error")

        if method == "profile":
            return httpx.Response(200, json={"result": {"ID": "1", "ADMIN": True}})
        if method == "department.get":
            return self._page(self.departments, body)
        if method == "sonet_group.get":
            return self._page(self.groups, body)
        if method == "user.get":
            return self._page(self.users, body)
        if method == "tasks.task.list":
            return self._page(self._filter_tasks(body), body, wrap="tasks")
        return httpx.Response(404, json={"error": "ERROR_METHOD_NOT_FOUND"})

    def _filter_tasks(self, body: dict) -> list[dict]:
        tasks = self.tasks
        since = (body.get("filter") or {}).get(">CHANGED_DATE")
        if since:
            threshold = datetime.fromisoformat(since.replace("Z", "+00:00"))
            tasks = [
                t for t in tasks
                if t.get("changedDate")
                and datetime.fromisoformat(t["changedDate"]) > threshold
            ]
        if (body.get("order") or {}).get("ID") == "desc":
            tasks = sorted(tasks, key=lambda t: int(t["id"]), reverse=True)
        return tasks

    def _page(self, items: list[dict], body: dict, wrap: str | None = None) -> httpx.Response:
        start = int(body.get("start") or 0)
        chunk = items[start:start + self.page_size]
        end = start + len(chunk)
        payload = {
            "result": {wrap: chunk} if wrap else chunk,
            "total": len(items),
            "time": {"start": 0.0, "finish": 0.1, "duration": 0.1},
        }
        if end < len(items):
            payload["next"] = end
        return httpx.Response(200, json=payload)


def make_task(task_id, status="2", **extra) -> dict:
    task = {
        "id": str(task_id),
        "parentId": None,
        "title": f"Task {task_id}",
        "description": f"Description {task_id}",
        "status": status,
        "priority": "1",
        "responsibleId": "1",
        "createdBy": "1",
        "groupId": "0",
        "deadline": "",
        "createdDate": "2024-01-10T09:00:00+03:00",
        "changedDate": "2024-01-15T10:00:00+03:00",
        "statusChangedDate": "2024-01-15T10:00:00+03:00",
        "closedDate": "",
        "commentsCount": "0",
        "timeEstimate": "0",
        "timeSpentInLogs": "0",
        "accomplices": [],
        "auditors": [],
        "tags": [],
        "ufCrmTask": [],
    }
    task.update(extra)
    return task


@pytest.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'mirror.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def store(session_factory) -> BitrixStore:
    async with session_factory() as session:
        session.add(Setting(key="bitrix_webhook", value=WEBHOOK_URL))
        await session.commit()
    return BitrixStore(session_factory)


@pytest.fixture
def portal() -> FakeBitrix:
    return FakeBitrix()


@pytest.fixture
def manager(store, portal) -> SyncManager:
    def client_factory(webhook_url):
        return Bitrix24Client(webhook_url, transport=httpx.MockTransport(portal.handler))

    options = SyncOptions(page_delay=0, incremental_page_delay=0)
    return SyncManager(store, options, client_factory=client_factory)
