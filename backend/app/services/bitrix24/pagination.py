"""Bitrix24 response envelope + `start`/`next` page walker.

Every list method answers with:
    {"result": ..., "total": 120, "next": 50, "time": {...}}
`next` is the offset of the following page; missing or 0 means exhausted.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from services.bitrix24.client import Bitrix24Client, DecodeError, RemoteStatusError

logger = logging.getLogger("taskmirror.bitrix24.pagination")

PageHandler = Callable[[list[dict]], Awaitable[None]]
ItemsExtractor = Callable[[Any], list[dict]]


@dataclass(frozen=True)
class Envelope:
    result: Any
    total: int = 0
    next: int = 0
    time: dict = field(default_factory=dict)


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"Invalid pagination value: {value!r}") from exc


def decode_envelope(raw: bytes) -> Envelope:
    """Parse a raw response body into an Envelope."""
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise DecodeError(f"Malformed JSON response: {exc}") from exc

    if not isinstance(data, dict):
        raise DecodeError(f"Unexpected response type: {type(data).__name__}")

    # Bitrix24 reports method-level errors with HTTP 200 on some portals
    if "error" in data:
        raise RemoteStatusError(
            200, f"{data.get('error')}: {data.get('error_description', '')}",
        )

    if "result" not in data:
        raise DecodeError("Response has no 'result' field")

    return Envelope(
        result=data["result"],
        total=_as_int(data.get("total")),
        next=_as_int(data.get("next")),
        time=data.get("time") or {},
    )


def list_items(result: Any) -> list[dict]:
    """Items of a plain list result (department.get, user.get, ...)."""
    if result is None:
        return []
    if not isinstance(result, list):
        raise DecodeError(f"Expected a list result, got {type(result).__name__}")
    return result


def task_items(result: Any) -> list[dict]:
    """Items of tasks.task.list: {"tasks": [...]}."""
    if not result:
        return []
    if not isinstance(result, dict):
        raise DecodeError(f"Expected {{'tasks': [...]}}, got {type(result).__name__}")
    return list_items(result.get("tasks"))


async def walk(
    client: Bitrix24Client,
    method: str,
    payload: dict | None,
    handler: PageHandler,
    *,
    items: ItemsExtractor = list_items,
    page_delay: float = 0.2,
) -> int:
    """Call `method` page by page, handing every non-empty page to `handler`.

    The payload template is copied per call with `start` set to the current
    offset. Stops on an empty page or when `next` is 0. Sleeps `page_delay`
    between pages to stay under the portal rate limit. Returns the number of
    items handed to the handler.
    """
    start = 0
    pages = 0
    total_items = 0

    while True:
        body = dict(payload or {})
        body["start"] = start
        envelope = decode_envelope(await client.call(method, body))

        page = items(envelope.result)
        if not page:
            break

        await handler(page)
        pages += 1
        total_items += len(page)

        if envelope.next == 0:
            break
        start = envelope.next
        await asyncio.sleep(page_delay)

    logger.debug("B24 %s: %d items in %d pages", method, total_items, pages)
    return total_items
