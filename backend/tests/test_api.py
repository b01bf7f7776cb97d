from __future__ import annotations

from types import SimpleNamespace

import httpx
import pytest
from fastapi import FastAPI

from api.bitrix24 import router
from conftest import make_task
from models import get_session
from services.bitrix24.scheduler import SyncScheduler


@pytest.fixture
def app(manager, store, session_factory) -> FastAPI:
    app = FastAPI()
    app.include_router(router)
    app.state.bitrix24_module = SimpleNamespace(
        store=store,
        sync_manager=manager,
        scheduler=SyncScheduler(manager, store, warmup=0, interval=60),
    )

    async def _session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _session
    return app


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def test_trigger_full_sync_then_status(app, client, portal) -> None:
    portal.tasks = [make_task(1, status="2"), make_task(2, status="5")]

    resp = await client.post("/api/bitrix24/sync")
    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert resp.json()["already_running"] is False

    for task in list(app.state.bitrix24_module.scheduler._background):
        await task

    status = (await client.get("/api/bitrix24/status")).json()
    assert status["enabled"] is True
    assert status["running"] is False
    assert status["archive_count"] == 2
    assert status["active_count"] == 1
    assert status["last_result"]["mode"] == "full"
    assert status["last_error"] is None
    assert status["checkpoint"].startswith("2024-01-15T07:00:00")


async def test_active_tasks_listing_and_filter(app, client, portal, manager) -> None:
    portal.tasks = [make_task(1), make_task(2), make_task(3, status="5")]
    await manager.run_full()

    body = (await client.get("/api/bitrix24/tasks/active")).json()
    assert body["total"] == 2
    assert [t["bitrix_id"] for t in body["tasks"]] == [2, 1]

    body = (await client.get("/api/bitrix24/tasks/active", params={"limit": 1})).json()
    assert [t["bitrix_id"] for t in body["tasks"]] == [2]

    assert (await client.get("/api/bitrix24/tasks/active", params={"limit": 0})).status_code == 422


async def test_module_disabled() -> None:
    app = FastAPI()
    app.include_router(router)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        assert (await client.post("/api/bitrix24/sync")).status_code == 503
        assert (await client.get("/api/bitrix24/status")).json()["enabled"] is False


async def test_connection_route_uses_stored_webhook(client, portal) -> None:
    body = (await client.get("/api/bitrix24/connection")).json()

    assert body["success"] is True
    assert portal.calls("profile") == [{}]
