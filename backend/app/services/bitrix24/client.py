"""Bitrix24 HTTP client for inbound-webhook REST calls.

Responsibilities:
- One POST per call to {webhook_url}/{method}
- Fixed per-call timeout
- Translating transport / HTTP failures into Bitrix24Error subclasses

No retries: a failed call aborts the current sync pass, the next scheduled
pass starts over. Does NOT know about pagination or business logic.
"""
import logging

import httpx

logger = logging.getLogger("taskmirror.bitrix24.client")


class Bitrix24Error(Exception):
    """Bitrix24 integration error. Fatal to the running sync pass."""


class ConfigurationError(Bitrix24Error):
    """Webhook URL is not configured."""


class TransportError(Bitrix24Error):
    """Network failure or timeout talking to Bitrix24."""


class RemoteStatusError(Bitrix24Error):
    """Bitrix24 answered with a non-success HTTP status or an error body."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(f"[{status_code}] {message}")


class DecodeError(Bitrix24Error):
    """Response body is not a valid Bitrix24 envelope."""


class Bitrix24Client:

    def __init__(
        self,
        webhook_url: str | None,
        *,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (webhook_url or "").rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def call(self, method: str, payload: dict | None = None) -> bytes:
        """Single API call. Returns the raw response body."""
        if not self.base_url:
            raise ConfigurationError("Bitrix24 webhook URL not configured")

        url = f"{self.base_url}/{method}"
        try:
            resp = await self._client.post(url, json=payload or {})
        except httpx.TransportError as exc:
            raise TransportError(f"{method}: {exc}") from exc

        if not resp.is_success:
            logger.warning("B24 %s returned HTTP %d", method, resp.status_code)
            raise RemoteStatusError(resp.status_code, f"Bitrix24 API status for {method}")

        return resp.content

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "Bitrix24Client":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
