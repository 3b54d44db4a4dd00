from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx


class SheetClient:
    """Reads form responses published as JSON rows, one object per response."""

    def __init__(
        self,
        base_url: str,
        sheet_id: str,
        sheet_name: str,
        *,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.sheet_id = sheet_id
        self.sheet_name = sheet_name
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def url(self) -> str:
        return f"{self.base_url}/{quote(self.sheet_id, safe='')}/{quote(self.sheet_name, safe='')}"

    async def fetch_rows(self) -> list[dict[str, Any]]:
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            response = await client.get(self.url)
            response.raise_for_status()
            payload = response.json()
        if not isinstance(payload, list):
            raise ValueError("sheet response must be a JSON array of rows")
        return [row for row in payload if isinstance(row, dict)]
