from __future__ import annotations

import os
from datetime import date, datetime, timezone
from typing import Any

import pytest
from fastapi.testclient import TestClient

import fuelwatch.core.security as security
from fuelwatch.core.config import get_settings
from fuelwatch.main import app
from fuelwatch.services.events import ChangeEventBroker, get_event_broker
from fuelwatch.services.repository import RepositoryNotFoundError, RepositoryUnavailableError, get_repository

STATION_ID = "11111111-1111-1111-1111-111111111111"


class FakePriceRepository:
    def __init__(self) -> None:
        now = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
        self.tables: dict[str, list[dict[str, Any]]] = {
            "petrol": [
                _price(1, STATION_ID, "Mobil Ikoyi", "Lagos Island", 5200, now),
                _price(2, None, "Total Wuse", "Abuja", 5100, now),
                _price(3, None, "Conoil", "Lagos Island", None, now),
            ],
            "diesel": [
                _price(1, STATION_ID, "Mobil Ikoyi", "Lagos Island", 4900, now),
                _price(2, None, "Oando", "Ibadan", 4800, now),
            ],
            "kerosene": [],
        }
        self.updates: list[dict[str, Any]] = []
        self.created: list[dict[str, Any]] = []

    async def fetch_price_tables(self) -> dict[str, list[dict[str, Any]]]:
        return self.tables

    async def list_price_records(self, fuel_type: str) -> list[dict[str, Any]]:
        return list(self.tables[fuel_type])

    async def create_price_entry(self, **kwargs: Any) -> dict[str, Any]:
        self.created.append(kwargs)
        return {
            "id": 99,
            "station_id": STATION_ID,
            "station_name": kwargs["station_name"],
            "station_location": kwargs["station_location"],
            "price": kwargs["price"],
            "tags": kwargs["tags"],
            "last_updated": datetime.now(timezone.utc),
            "effective_date": kwargs["effective_date"],
        }

    async def update_station_prices(self, *, station_id: str, prices: dict[str, float | None]) -> dict[str, Any]:
        if station_id != STATION_ID:
            raise RepositoryNotFoundError("station not found")
        self.updates.append(prices)
        return {"station_id": station_id, "updated": {"petrol": 1}, "inserted": {"kerosene": 1}}

    async def delete_station(self, *, station_id: str) -> dict[str, Any]:
        if station_id != STATION_ID:
            raise RepositoryNotFoundError("station not found")
        return {"station_id": station_id, "deleted": {"petrol": 1, "diesel": 1, "kerosene": 0}}


class UnavailableRepository:
    async def fetch_price_tables(self) -> dict[str, list[dict[str, Any]]]:
        raise RepositoryUnavailableError("database unavailable")


def _price(
    row_id: int,
    station_id: str | None,
    name: str,
    location: str,
    price: float | None,
    updated: datetime,
) -> dict[str, Any]:
    return {
        "id": row_id,
        "station_id": station_id,
        "station_name": name,
        "station_location": location,
        "price": price,
        "tags": [],
        "last_updated": updated,
        "effective_date": date(2024, 5, 1),
    }


@pytest.fixture
def fake_repo() -> FakePriceRepository:
    return FakePriceRepository()


@pytest.fixture
def broker() -> ChangeEventBroker:
    return ChangeEventBroker(queue_size=10)


@pytest.fixture
def stations_client(fake_repo: FakePriceRepository, broker: ChangeEventBroker) -> TestClient:
    os.environ["FW_SUPABASE_URL"] = "https://example.supabase.co"
    os.environ["FW_SUPABASE_ANON_KEY"] = "anon-key"
    get_settings.cache_clear()

    app.dependency_overrides[get_repository] = lambda: fake_repo
    app.dependency_overrides[get_event_broker] = lambda: broker

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
    os.environ.pop("FW_SUPABASE_URL", None)
    os.environ.pop("FW_SUPABASE_ANON_KEY", None)
    get_settings.cache_clear()


def _mock_supabase_user(monkeypatch: pytest.MonkeyPatch, user: dict[str, Any]) -> None:
    async def _fake_fetch(**_: Any) -> dict[str, Any]:
        return user

    monkeypatch.setattr(security, "_fetch_supabase_user", _fake_fetch)


def test_list_stations_returns_merged_rows_with_camel_case_prices(stations_client: TestClient) -> None:
    response = stations_client.get("/stations")

    assert response.status_code == 200
    assert response.headers["X-Total-Count"] == "4"
    body = response.json()
    assert [item["station_name"] for item in body] == ["Mobil Ikoyi", "Total Wuse", "Conoil", "Oando"]
    shell = body[0]
    assert shell["petrolPrice"] == 5200
    assert shell["dieselPrice"] == 4900
    assert shell["kerosenePrice"] is None
    assert shell["stationCount"] == 2
    assert shell["station_id"] == STATION_ID


def test_list_stations_require_petrol_hides_diesel_only(stations_client: TestClient) -> None:
    response = stations_client.get("/stations", params={"require_petrol": "true"})

    assert response.status_code == 200
    assert "Oando" not in [item["station_name"] for item in response.json()]


def test_list_stations_search_sort_and_paginate(stations_client: TestClient) -> None:
    response = stations_client.get("/stations", params={"q": "lagos", "sort_by": "petrol", "sort_dir": "desc"})
    assert response.status_code == 200
    assert [item["station_name"] for item in response.json()] == ["Mobil Ikoyi", "Conoil"]

    paged = stations_client.get("/stations", params={"limit": 1, "offset": 1})
    assert paged.status_code == 200
    assert [item["station_name"] for item in paged.json()] == ["Total Wuse"]
    assert paged.headers["X-Total-Count"] == "4"


def test_list_stations_maps_unavailable_repository_to_503(stations_client: TestClient) -> None:
    app.dependency_overrides[get_repository] = lambda: UnavailableRepository()

    response = stations_client.get("/stations")

    assert response.status_code == 503


def test_get_station_by_id(stations_client: TestClient) -> None:
    response = stations_client.get(f"/stations/{STATION_ID}")
    assert response.status_code == 200
    assert response.json()["station_name"] == "Mobil Ikoyi"

    missing = stations_client.get("/stations/22222222-2222-2222-2222-222222222222")
    assert missing.status_code == 404


def test_locations_summary_and_detail(stations_client: TestClient) -> None:
    summary = stations_client.get("/locations")
    assert summary.status_code == 200
    assert summary.json() == [
        {"station_location": "Lagos Island", "slug": "lagos-island", "stationCount": 2},
        {"station_location": "Abuja", "slug": "abuja", "stationCount": 1},
        {"station_location": "Ibadan", "slug": "ibadan", "stationCount": 1},
    ]

    detail = stations_client.get("/locations/lagos-island")
    assert detail.status_code == 200
    assert [item["station_name"] for item in detail.json()["stations"]] == ["Mobil Ikoyi", "Conoil"]

    assert stations_client.get("/locations/kano").status_code == 404


def test_list_prices_sorted_by_price_with_nulls_last(stations_client: TestClient) -> None:
    response = stations_client.get("/prices/petrol")

    assert response.status_code == 200
    assert [item["price"] for item in response.json()] == [5100, 5200, None]


def test_list_prices_rejects_unknown_fuel(stations_client: TestClient) -> None:
    assert stations_client.get("/prices/jet-a1").status_code == 422


def test_create_price_entry_requires_admin(
    stations_client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
    fake_repo: FakePriceRepository,
) -> None:
    _mock_supabase_user(monkeypatch, {"id": "user-1", "app_metadata": {"role": "user"}})

    response = stations_client.post(
        "/prices/petrol",
        json={"station_name": "Shell", "station_location": "Lagos", "price": 5000},
        headers={"Authorization": "Bearer token"},
    )

    assert response.status_code == 403
    assert fake_repo.created == []


def test_user_metadata_role_does_not_grant_admin(stations_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_supabase_user(monkeypatch, {"id": "user-1", "user_metadata": {"role": "admin"}})

    response = stations_client.post(
        "/prices/petrol",
        json={"station_name": "Shell", "station_location": "Lagos", "price": 5000},
        headers={"Authorization": "Bearer token"},
    )

    assert response.status_code == 403


def test_create_price_entry_as_admin_publishes_event(
    stations_client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
    fake_repo: FakePriceRepository,
    broker: ChangeEventBroker,
) -> None:
    _mock_supabase_user(monkeypatch, {"id": "admin-1", "app_metadata": {"role": "admin"}})
    published: list[str] = []
    original_publish = broker.publish

    def _record(event_type: str, payload: dict[str, Any]):
        published.append(event_type)
        return original_publish(event_type, payload)

    monkeypatch.setattr(broker, "publish", _record)

    response = stations_client.post(
        "/prices/diesel",
        json={"station_name": "  Mobil   Ikoyi ", "station_location": "Lagos", "price": 4950, "tags": ["promo"]},
        headers={"Authorization": "Bearer token"},
    )

    assert response.status_code == 201
    assert response.json()["station_name"] == "Mobil Ikoyi"
    assert fake_repo.created[0]["fuel_type"] == "diesel"
    assert published == ["price_inserted"]


def test_create_price_entry_requires_bearer_token(stations_client: TestClient) -> None:
    response = stations_client.post(
        "/prices/petrol",
        json={"station_name": "Shell", "station_location": "Lagos", "price": 5000},
    )

    assert response.status_code == 401


def test_update_station_prices_as_admin(
    stations_client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
    fake_repo: FakePriceRepository,
) -> None:
    _mock_supabase_user(monkeypatch, {"id": "admin-1", "app_metadata": {"role": "admin"}})

    response = stations_client.put(
        f"/stations/{STATION_ID}/prices",
        json={"petrol_price": 5300, "kerosene_price": 4100},
        headers={"Authorization": "Bearer token"},
    )

    assert response.status_code == 200
    assert response.json() == {"station_id": STATION_ID, "updated": {"petrol": 1}, "inserted": {"kerosene": 1}}
    assert fake_repo.updates == [{"petrol": 5300, "diesel": None, "kerosene": 4100}]


def test_update_unknown_station_is_404(stations_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_supabase_user(monkeypatch, {"id": "admin-1", "app_metadata": {"role": "admin"}})

    response = stations_client.put(
        "/stations/22222222-2222-2222-2222-222222222222/prices",
        json={"petrol_price": 5300},
        headers={"Authorization": "Bearer token"},
    )

    assert response.status_code == 404


def test_delete_station_requires_admin_and_reports_counts(
    stations_client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _mock_supabase_user(monkeypatch, {"id": "user-1", "app_metadata": {"role": "user"}})
    denied = stations_client.delete(f"/stations/{STATION_ID}", headers={"Authorization": "Bearer token"})
    assert denied.status_code == 403

    _mock_supabase_user(monkeypatch, {"id": "admin-1", "app_metadata": {"role": "admin"}})
    allowed = stations_client.delete(f"/stations/{STATION_ID}", headers={"Authorization": "Bearer token"})
    assert allowed.status_code == 200
    assert allowed.json()["deleted"] == {"petrol": 1, "diesel": 1, "kerosene": 0}
