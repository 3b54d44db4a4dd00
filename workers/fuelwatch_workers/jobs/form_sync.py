from __future__ import annotations

from datetime import datetime, timezone
import logging
import re
from typing import Any

from opentelemetry import trace

from fuelwatch_workers.services.sheet_client import SheetClient
from fuelwatch_workers.services.sync_client import SyncClient

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

FORM_TIMESTAMP_FORMAT = "%d/%m/%Y %H:%M:%S"
PRICE_COLUMNS = {
    "petrol_price": "Petrol Price",
    "diesel_price": "Diesel Price",
    "kerosene_price": "Kerosene Price",
}
_LEADING_NUMBER_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)")


def parse_form_timestamp(value: Any) -> datetime | None:
    """Parse a form `Timestamp` cell (`dd/mm/yyyy HH:MM:SS`) as a UTC instant."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.strptime(" ".join(value.split()), FORM_TIMESTAMP_FORMAT)
    except ValueError:
        return None
    return parsed.replace(tzinfo=timezone.utc)


def parse_form_price(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _LEADING_NUMBER_RE.match(value.strip().replace(",", ""))
        if not match:
            return None
        number = float(match.group(0))
    else:
        return None
    # zero and negative entries are treated as "not reported"
    return number if number > 0 else None


def map_form_row(row: dict[str, Any]) -> dict[str, Any] | None:
    submitted_at = parse_form_timestamp(row.get("Timestamp"))
    station_name = _as_text(row.get("Station Name"))
    station_location = _as_text(row.get("Location"))
    if submitted_at is None or not station_name or not station_location:
        return None

    prices = {field: parse_form_price(row.get(column)) for field, column in PRICE_COLUMNS.items()}
    if all(price is None for price in prices.values()):
        return None

    return {
        "station_name": station_name,
        "station_location": station_location,
        **prices,
        "submitted_by": _as_text(row.get("Email")) or "anonymous",
        "submitted_at": submitted_at,
    }


def select_new_rows(rows: list[dict[str, Any]], high_water_mark: datetime | None) -> list[dict[str, Any]]:
    """Map sheet rows and keep those strictly newer than the last synced submission."""
    selected: list[dict[str, Any]] = []
    skipped = 0
    for row in rows:
        mapped = map_form_row(row)
        if mapped is None:
            skipped += 1
            continue
        if high_water_mark is not None and mapped["submitted_at"] <= high_water_mark:
            continue
        selected.append(mapped)
    if skipped:
        logger.info("skipped incomplete form rows: %s", skipped)
    return selected


async def run_form_sync(sheet_client: SheetClient, sync_client: SyncClient) -> dict[str, int]:
    with tracer.start_as_current_span("worker.form_sync") as span:
        high_water_mark = await sync_client.get_high_water_mark()
        rows = await sheet_client.fetch_rows()
        selected = select_new_rows(rows, high_water_mark)
        inserted = await sync_client.push_submissions(selected) if selected else 0
        span.set_attribute("form_sync.rows", len(rows))
        span.set_attribute("form_sync.selected", len(selected))
        span.set_attribute("form_sync.inserted", inserted)

    if selected:
        logger.info("form sync pushed rows=%s selected=%s inserted=%s", len(rows), len(selected), inserted)
    return {"fetched": len(rows), "selected": len(selected), "inserted": inserted}


def _as_text(value: Any) -> str | None:
    if isinstance(value, str):
        collapsed = " ".join(value.split())
        return collapsed or None
    return None
