from __future__ import annotations

import asyncio
import logging
import random

from fuelwatch_workers.core.config import get_settings
from fuelwatch_workers.core.telemetry import (
    configure_worker_logging,
    setup_worker_telemetry,
    shutdown_worker_telemetry,
)
from fuelwatch_workers.jobs.form_sync import run_form_sync
from fuelwatch_workers.services.sheet_client import SheetClient
from fuelwatch_workers.services.sync_client import SyncClient

logger = logging.getLogger(__name__)


async def run_worker() -> None:
    settings = get_settings()
    configure_worker_logging()
    if not settings.sheet_id:
        raise RuntimeError("FW_WORKER_SHEET_ID is required")

    telemetry_runtime = setup_worker_telemetry(settings)
    sheet_client = SheetClient(
        settings.sheet_base_url,
        settings.sheet_id,
        settings.sheet_name,
        timeout_seconds=settings.request_timeout_seconds,
    )
    sync_client = SyncClient(
        base_url=settings.api_base_url,
        module_id=settings.module_id,
        api_key=settings.api_key,
        timeout_seconds=settings.request_timeout_seconds,
        batch_size=settings.push_batch_size,
    )

    backoff = settings.sync_interval_seconds
    try:
        while True:
            try:
                await run_form_sync(sheet_client, sync_client)
                backoff = settings.sync_interval_seconds
                await asyncio.sleep(settings.sync_interval_seconds)
            except Exception as exc:  # pragma: no cover - loop robustness
                jitter = random.uniform(0.0, 0.5)
                sleep_for = min(backoff * (2.0 + jitter), settings.max_backoff_seconds)
                logger.exception("form sync failed: %s; retry in %.1fs", exc, sleep_for)
                await asyncio.sleep(sleep_for)
                backoff = sleep_for
    finally:
        shutdown_worker_telemetry(telemetry_runtime)


if __name__ == "__main__":
    asyncio.run(run_worker())
