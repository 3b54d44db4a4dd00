"""Reconcile the three per-fuel price tables into station and location views.

Each fuel type lives in its own table (`petrol_prices`, `diesel_prices`,
`kerosene_prices`). Rows are matched across tables by exact equality on
`(station_name, station_location)`; nothing in storage guarantees a single row
per key, so duplicates inside one table resolve by last-write-wins on
`last_updated`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Literal

from fuelwatch.core.slugs import slugify

logger = logging.getLogger(__name__)

FuelType = Literal["petrol", "diesel", "kerosene"]
StationSortBy = Literal["station_name", "station_location", "petrol", "diesel", "kerosene", "last_updated"]

FUEL_TYPES: tuple[FuelType, ...] = ("petrol", "diesel", "kerosene")
PRICE_TABLES: dict[str, str] = {
    "petrol": "petrol_prices",
    "diesel": "diesel_prices",
    "kerosene": "kerosene_prices",
}

StationKey = tuple[str, str]


@dataclass(slots=True)
class PriceRecord:
    station_name: str
    station_location: str
    price: float | None
    last_updated: datetime | None = None
    effective_date: date | None = None
    tags: list[str] = field(default_factory=list)
    station_id: str | None = None
    id: int | None = None

    @property
    def key(self) -> StationKey:
        return (self.station_name, self.station_location)


@dataclass(slots=True)
class MergedStation:
    station_name: str
    station_location: str
    petrol_price: float | None = None
    diesel_price: float | None = None
    kerosene_price: float | None = None
    station_count: int = 0
    last_updated: datetime | None = None
    station_id: str | None = None

    @property
    def key(self) -> StationKey:
        return (self.station_name, self.station_location)

    def price_for(self, fuel_type: str) -> float | None:
        return getattr(self, f"{fuel_type}_price")


@dataclass(slots=True)
class LocationGroup:
    station_location: str
    slug: str
    station_count: int
    stations: list[MergedStation] = field(default_factory=list)


def coerce_price_record(row: Mapping[str, Any] | PriceRecord | None) -> PriceRecord | None:
    if row is None:
        return None
    if isinstance(row, PriceRecord):
        return row
    if not isinstance(row, Mapping):
        return None

    station_name = _as_text(row.get("station_name"))
    station_location = _as_text(row.get("station_location"))
    if station_name is None or station_location is None:
        return None

    raw_tags = row.get("tags")
    tags = [tag for tag in raw_tags if isinstance(tag, str)] if isinstance(raw_tags, list) else []
    station_id = row.get("station_id")
    return PriceRecord(
        station_name=station_name,
        station_location=station_location,
        price=_as_price(row.get("price")),
        last_updated=_as_datetime(row.get("last_updated")),
        effective_date=_as_date(row.get("effective_date")),
        tags=tags,
        station_id=str(station_id) if station_id is not None else None,
        id=_as_int(row.get("id")),
    )


def coerce_price_records(rows: Iterable[Mapping[str, Any] | PriceRecord | None] | None) -> list[PriceRecord]:
    records: list[PriceRecord] = []
    dropped = 0
    for row in rows or ():
        record = coerce_price_record(row)
        if record is None:
            dropped += 1
            continue
        records.append(record)
    if dropped:
        logger.debug("dropped %s price rows without station name or location", dropped)
    return records


def merge_stations(
    petrol: Iterable[Mapping[str, Any] | PriceRecord | None] | None,
    diesel: Iterable[Mapping[str, Any] | PriceRecord | None] | None,
    kerosene: Iterable[Mapping[str, Any] | PriceRecord | None] | None,
    *,
    require_petrol: bool = False,
) -> list[MergedStation]:
    """Fold the three fuel tables into one `MergedStation` per station key.

    Output order is first appearance: petrol rows first, then diesel-only and
    kerosene-only stations. With `require_petrol=True` stations that have no
    petrol row are left out.
    """
    records_by_fuel = {
        "petrol": coerce_price_records(petrol),
        "diesel": coerce_price_records(diesel),
        "kerosene": coerce_price_records(kerosene),
    }

    merged: dict[StationKey, MergedStation] = {}
    seen_at: dict[tuple[StationKey, str], datetime | None] = {}

    for fuel_type in FUEL_TYPES:
        for record in records_by_fuel[fuel_type]:
            station = merged.get(record.key)
            if station is None:
                if require_petrol and fuel_type != "petrol":
                    continue
                station = MergedStation(
                    station_name=record.station_name,
                    station_location=record.station_location,
                    station_id=record.station_id,
                )
                merged[record.key] = station
            _apply_price(station, fuel_type, record, seen_at)

    counts = _count_from_records(records_by_fuel.values())
    for station in merged.values():
        station.station_count = counts.get(station.station_location, 0)
    return list(merged.values())


def count_stations_by_location(
    petrol: Iterable[Mapping[str, Any] | PriceRecord | None] | None,
    diesel: Iterable[Mapping[str, Any] | PriceRecord | None] | None,
    kerosene: Iterable[Mapping[str, Any] | PriceRecord | None] | None,
) -> dict[str, int]:
    return _count_from_records(
        [coerce_price_records(petrol), coerce_price_records(diesel), coerce_price_records(kerosene)]
    )


def group_by_location(stations: Iterable[MergedStation]) -> list[LocationGroup]:
    groups: dict[str, LocationGroup] = {}
    for station in stations:
        group = groups.get(station.station_location)
        if group is None:
            group = LocationGroup(
                station_location=station.station_location,
                slug=slugify(station.station_location),
                station_count=station.station_count,
            )
            groups[station.station_location] = group
        group.stations.append(station)
    return list(groups.values())


def find_location(groups: Iterable[LocationGroup], slug: str) -> LocationGroup | None:
    wanted = slug.strip().lower()
    return next((group for group in groups if group.slug == wanted), None)


def filter_stations(stations: Iterable[MergedStation], query: str | None) -> list[MergedStation]:
    needle = (query or "").strip().lower()
    if not needle:
        return list(stations)
    return [
        station
        for station in stations
        if needle in station.station_name.lower() or needle in station.station_location.lower()
    ]


def sort_stations(
    stations: Iterable[MergedStation],
    *,
    sort_by: StationSortBy = "station_name",
    sort_dir: Literal["asc", "desc"] = "asc",
) -> list[MergedStation]:
    """Stable sort; stations missing the sort value always go last."""
    descending = sort_dir == "desc"
    present: list[MergedStation] = []
    missing: list[MergedStation] = []
    for station in stations:
        if _sort_value(station, sort_by) is None:
            missing.append(station)
        else:
            present.append(station)
    present.sort(key=lambda station: _sort_value(station, sort_by), reverse=descending)
    return present + missing


def plan_price_inserts(submission: Mapping[str, Any]) -> list[tuple[FuelType, float]]:
    """Price rows an approved submission writes: one per fuel with a price."""
    planned: list[tuple[FuelType, float]] = []
    for fuel_type in FUEL_TYPES:
        price = _as_price(submission.get(f"{fuel_type}_price"))
        if price is not None:
            planned.append((fuel_type, price))
    return planned


def _apply_price(
    station: MergedStation,
    fuel_type: str,
    record: PriceRecord,
    seen_at: dict[tuple[StationKey, str], datetime | None],
) -> None:
    slot = (record.key, fuel_type)
    if slot in seen_at:
        previous = seen_at[slot]
        if record.last_updated is None:
            return
        if previous is not None and record.last_updated <= previous:
            return

    seen_at[slot] = record.last_updated
    setattr(station, f"{fuel_type}_price", record.price)
    if station.station_id is None:
        station.station_id = record.station_id
    if record.last_updated is not None and (
        station.last_updated is None or record.last_updated > station.last_updated
    ):
        station.last_updated = record.last_updated


def _count_from_records(record_sets: Iterable[list[PriceRecord]]) -> dict[str, int]:
    names_by_location: dict[str, set[str]] = {}
    for records in record_sets:
        for record in records:
            names_by_location.setdefault(record.station_location, set()).add(record.station_name)
    return {location: len(names) for location, names in names_by_location.items()}


def _sort_value(station: MergedStation, sort_by: str) -> Any:
    if sort_by in FUEL_TYPES:
        return station.price_for(sort_by)
    if sort_by == "last_updated":
        return station.last_updated
    if sort_by == "station_location":
        return station.station_location.lower()
    return station.station_name.lower()


def _as_text(value: Any) -> str | None:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None


def _as_price(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    if price != price or price in (float("inf"), float("-inf")):
        return None
    return price


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _as_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None
