import asyncio
import json
from datetime import datetime, timezone

import httpx

from fuelwatch_workers.jobs.form_sync import (
    map_form_row,
    parse_form_price,
    parse_form_timestamp,
    run_form_sync,
    select_new_rows,
)
from fuelwatch_workers.services.sheet_client import SheetClient
from fuelwatch_workers.services.sync_client import SyncClient


def _sheet_row(timestamp: str, **overrides) -> dict:
    row = {
        "Timestamp": timestamp,
        "Station Name": " Mobil  Ikoyi ",
        "Location": "Lagos",
        "Petrol Price": "5200",
        "Diesel Price": "",
        "Kerosene Price": "",
        "Email": "",
    }
    row.update(overrides)
    return row


def test_parse_form_timestamp_is_day_first_utc() -> None:
    assert parse_form_timestamp("03/04/2024 17:05:09") == datetime(2024, 4, 3, 17, 5, 9, tzinfo=timezone.utc)
    assert parse_form_timestamp("3/4/2024 7:05:09") == datetime(2024, 4, 3, 7, 5, 9, tzinfo=timezone.utc)


def test_parse_form_timestamp_rejects_garbage() -> None:
    assert parse_form_timestamp("2024-04-03T17:05:09Z") is None
    assert parse_form_timestamp("") is None
    assert parse_form_timestamp(None) is None


def test_parse_form_price_keeps_positive_leading_numbers() -> None:
    assert parse_form_price("5200") == 5200.0
    assert parse_form_price("5,150 NGN") == 5150.0
    assert parse_form_price(4800) == 4800.0
    assert parse_form_price("0") is None
    assert parse_form_price("n/a") is None
    assert parse_form_price("") is None
    assert parse_form_price(None) is None


def test_map_form_row_normalizes_and_defaults_email() -> None:
    mapped = map_form_row(_sheet_row("01/05/2024 09:15:00", **{"Diesel Price": "4900"}))

    assert mapped == {
        "station_name": "Mobil Ikoyi",
        "station_location": "Lagos",
        "petrol_price": 5200.0,
        "diesel_price": 4900.0,
        "kerosene_price": None,
        "submitted_by": "anonymous",
        "submitted_at": datetime(2024, 5, 1, 9, 15, tzinfo=timezone.utc),
    }


def test_map_form_row_skips_incomplete_rows() -> None:
    assert map_form_row(_sheet_row("01/05/2024 09:15:00", **{"Station Name": "  "})) is None
    assert map_form_row(_sheet_row("01/05/2024 09:15:00", Location="")) is None
    assert map_form_row(_sheet_row("01/05/2024 09:15:00", **{"Petrol Price": "0"})) is None
    assert map_form_row(_sheet_row("not a date")) is None


def test_select_new_rows_is_strictly_after_high_water_mark() -> None:
    rows = [
        _sheet_row("01/05/2024 09:00:00"),
        _sheet_row("01/05/2024 09:15:00", Email="driver@example.com"),
        _sheet_row("01/05/2024 09:30:00"),
    ]
    mark = datetime(2024, 5, 1, 9, 15, tzinfo=timezone.utc)

    selected = select_new_rows(rows, mark)

    assert [row["submitted_at"].minute for row in selected] == [30]
    assert len(select_new_rows(rows, None)) == 3


def test_run_form_sync_pushes_only_new_rows() -> None:
    pushed: list[dict] = []

    def _api(request: httpx.Request) -> httpx.Response:
        assert request.headers["X-Module-Id"] == "form-sync"
        if request.url.path == "/sync/form/high-water-mark":
            return httpx.Response(200, json={"submitted_at": "2024-05-01T09:00:00Z"})
        payload = json.loads(request.content)
        pushed.extend(payload["submissions"])
        return httpx.Response(200, json={"received_count": len(payload["submissions"]), "inserted_count": 1})

    def _sheet(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/sheet-1/Form Responses 1"
        return httpx.Response(
            200,
            json=[
                _sheet_row("01/05/2024 08:59:59"),
                _sheet_row("01/05/2024 09:10:00", Email="driver@example.com"),
                {"Timestamp": "01/05/2024 09:20:00", "Station Name": "Oando"},
            ],
        )

    sheet_client = SheetClient(
        "https://opensheet.example",
        "sheet-1",
        "Form Responses 1",
        transport=httpx.MockTransport(_sheet),
    )
    sync_client = SyncClient(
        "http://api.local",
        "form-sync",
        "key",
        transport=httpx.MockTransport(_api),
    )

    summary = asyncio.run(run_form_sync(sheet_client, sync_client))

    assert summary == {"fetched": 3, "selected": 1, "inserted": 1}
    assert len(pushed) == 1
    assert pushed[0]["submitted_by"] == "driver@example.com"
    assert pushed[0]["submitted_at"] == "2024-05-01T09:10:00+00:00"
