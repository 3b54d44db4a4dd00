from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any

import httpx

from fuelwatch.core.config import get_settings

logger = logging.getLogger(__name__)


class AdminNotifier:
    """Out-of-band ping to an administrator webhook when a price report arrives.

    Delivery is best-effort: failures are logged and never reach the submitter.
    """

    def __init__(
        self,
        webhook_url: str | None,
        *,
        timeout_seconds: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.webhook_url = webhook_url
        self.timeout_seconds = timeout_seconds
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def notify_new_submission(self, submission: dict[str, Any]) -> bool:
        if not self.webhook_url:
            return False

        payload = {
            "event": "submission_created",
            "submission_id": submission.get("id"),
            "queue": submission.get("queue"),
            "station_name": submission.get("station_name"),
            "station_location": submission.get("station_location"),
            "petrol_price": submission.get("petrol_price"),
            "diesel_price": submission.get("diesel_price"),
            "kerosene_price": submission.get("kerosene_price"),
            "submitted_by": submission.get("submitted_by"),
        }
        try:
            if self._client is not None:
                response = await self._client.post(self.webhook_url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.post(self.webhook_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(
                "admin notification failed submission_id=%s error=%s",
                submission.get("id"),
                exc,
            )
            return False

        logger.info("admin notified submission_id=%s", submission.get("id"))
        return True


@lru_cache
def get_notifier() -> AdminNotifier:
    settings = get_settings()
    return AdminNotifier(
        settings.admin_notify_webhook_url,
        timeout_seconds=settings.notify_timeout_seconds,
    )
