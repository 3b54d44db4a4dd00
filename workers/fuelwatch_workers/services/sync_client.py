from __future__ import annotations

from datetime import datetime
from typing import Any

import httpx

from fuelwatch.schemas.sync import FORM_SYNC_MAX_BATCH


class SyncClient:
    """Machine-authenticated client for the API's form-sync endpoints."""

    def __init__(
        self,
        base_url: str,
        module_id: str,
        api_key: str,
        *,
        timeout_seconds: float = 10.0,
        batch_size: int = FORM_SYNC_MAX_BATCH,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers = {
            "X-Module-Id": module_id,
            "X-API-Key": api_key,
        }
        self.timeout_seconds = timeout_seconds
        self.batch_size = max(1, min(batch_size, FORM_SYNC_MAX_BATCH))
        self._transport = transport

    async def get_high_water_mark(self) -> datetime | None:
        async with self._client() as client:
            response = await client.get(f"{self.base_url}/sync/form/high-water-mark", headers=self.headers)
            response.raise_for_status()
            raw = response.json().get("submitted_at")
        if not raw:
            return None
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))

    async def push_submissions(self, submissions: list[dict[str, Any]]) -> int:
        """Push rows oldest first in batches the API accepts; returns the total inserted."""
        if not submissions:
            return 0
        ordered = sorted(submissions, key=lambda item: item["submitted_at"])
        inserted = 0
        async with self._client() as client:
            for start in range(0, len(ordered), self.batch_size):
                chunk = ordered[start : start + self.batch_size]
                payload = {
                    "submissions": [
                        {**item, "submitted_at": item["submitted_at"].isoformat()}
                        if isinstance(item.get("submitted_at"), datetime)
                        else item
                        for item in chunk
                    ]
                }
                response = await client.post(
                    f"{self.base_url}/sync/form/submissions",
                    json=payload,
                    headers=self.headers,
                )
                response.raise_for_status()
                inserted += int(response.json().get("inserted_count", 0))
        return inserted

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport)
