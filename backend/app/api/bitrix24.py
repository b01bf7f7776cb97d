"""Bitrix24 mirror REST API — manual sync triggers, status, active tasks.

Prefix: /api/bitrix24. Triggers are fire-and-forget: the sync runs in the
background and its outcome only shows up in the logs and /status.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import get_session
from models.bitrix_task import BitrixTask, BitrixTaskActive

router = APIRouter(prefix="/api/bitrix24", tags=["bitrix24"])
logger = logging.getLogger("taskmirror.bitrix24.api")


def _get_module(request: Request):
    """Get Bitrix24Module from app state."""
    module = getattr(request.app.state, "bitrix24_module", None)
    if not module:
        raise HTTPException(503, "Bitrix24 module is not enabled")
    return module


# ─── Sync triggers ────────────────────────────────────────────────────

@router.post("/sync")
async def start_full_sync(request: Request):
    """Start a full sync (departments, groups, users, tasks) in the background."""
    module = _get_module(request)
    already_running = module.sync_manager.is_running
    module.scheduler.trigger_full()
    logger.info("B24 manual full sync requested (running=%s)", already_running)
    return {
        "success": True,
        "message": "Background sync started",
        "already_running": already_running,
    }


@router.post("/sync/updates")
async def start_incremental_sync(request: Request):
    """Start an incremental task sync in the background."""
    module = _get_module(request)
    already_running = module.sync_manager.is_running
    module.scheduler.trigger_incremental()
    logger.info("B24 manual incremental sync requested (running=%s)", already_running)
    return {
        "success": True,
        "message": "Background incremental sync started",
        "already_running": already_running,
    }


# ─── Status ───────────────────────────────────────────────────────────

@router.get("/status")
async def get_status(request: Request):
    """Module status, last pass result, table counters."""
    module = getattr(request.app.state, "bitrix24_module", None)
    if not module:
        return {"enabled": False, "running": False, "last_result": None}

    manager = module.sync_manager
    checkpoint = await manager.get_max_modified_date()
    return {
        "enabled": True,
        "running": manager.is_running,
        "last_result": manager.last_result.as_dict() if manager.last_result else None,
        "last_error": manager.last_error,
        "checkpoint": checkpoint.isoformat() if checkpoint else None,
        "archive_count": await module.store.count(BitrixTask),
        "active_count": await module.store.count(BitrixTaskActive),
    }


@router.get("/connection")
async def check_connection(request: Request):
    """Call Bitrix24 `profile` with the stored webhook URL."""
    module = _get_module(request)
    return await module.sync_manager.test_connection()


# ─── Active tasks ─────────────────────────────────────────────────────

@router.get("/tasks/active")
async def list_active_tasks(
    responsible_id: int | None = None,
    group_id: int | None = None,
    limit: int = Query(50, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
):
    """List tasks currently not completed in Bitrix24."""
    stmt = (
        select(BitrixTaskActive)
        .order_by(BitrixTaskActive.bitrix_id.desc())
        .limit(limit)
    )
    if responsible_id:
        stmt = stmt.where(BitrixTaskActive.responsible_id == responsible_id)
    if group_id:
        stmt = stmt.where(BitrixTaskActive.group_id == group_id)

    result = await session.execute(stmt)
    tasks = result.scalars().all()

    return {
        "tasks": [
            {
                "id": t.id,
                "bitrix_id": t.bitrix_id,
                "parent_id": t.parent_id,
                "title": t.title,
                "status": t.status,
                "priority": t.priority,
                "responsible_id": t.responsible_id,
                "group_id": t.group_id,
                "deadline": t.deadline.isoformat() if t.deadline else None,
                "bitrix_modified": t.bitrix_modified.isoformat() if t.bitrix_modified else None,
            }
            for t in tasks
        ],
        "total": len(tasks),
    }
