from datetime import datetime, timezone

from fuelwatch.services.merge import (
    count_stations_by_location,
    filter_stations,
    find_location,
    group_by_location,
    merge_stations,
    plan_price_inserts,
    sort_stations,
)


def _row(name: str, location: str, price: float | None, updated: str | None = None, **extra) -> dict:
    row = {"station_name": name, "station_location": location, "price": price, "last_updated": updated}
    row.update(extra)
    return row


def test_merge_combines_petrol_and_diesel_for_same_station() -> None:
    stations = merge_stations(
        [_row("A", "X", 600)],
        [_row("A", "X", 650)],
        [],
    )

    assert len(stations) == 1
    station = stations[0]
    assert (station.station_name, station.station_location) == ("A", "X")
    assert station.petrol_price == 600
    assert station.diesel_price == 650
    assert station.kerosene_price is None
    assert station.station_count == 1


def test_merge_counts_distinct_names_per_location_across_all_tables() -> None:
    stations = merge_stations(
        [_row("A", "X", 600), _row("B", "X", 610)],
        [_row("C", "X", 700)],
        [_row("A", "Y", 500)],
    )

    counts = {station.station_name + "/" + station.station_location: station.station_count for station in stations}
    assert counts == {"A/X": 3, "B/X": 3, "C/X": 3, "A/Y": 1}


def test_duplicate_petrol_rows_resolve_to_latest_update() -> None:
    stations = merge_stations(
        [
            _row("A", "X", 600, "2024-01-02T08:00:00Z"),
            _row("A", "X", 590, "2024-01-01T08:00:00Z"),
            _row("A", "X", 620, "2024-01-03T08:00:00Z"),
        ],
        [],
        [],
    )

    assert len(stations) == 1
    assert stations[0].petrol_price == 620
    assert stations[0].last_updated == datetime(2024, 1, 3, 8, tzinfo=timezone.utc)


def test_duplicate_rows_without_timestamp_do_not_overwrite() -> None:
    stations = merge_stations(
        [
            _row("A", "X", 600, None),
            _row("A", "X", 610, "2024-01-01T00:00:00Z"),
            _row("A", "X", 999, None),
        ],
        [],
        [],
    )

    assert stations[0].petrol_price == 610


def test_last_write_wins_applies_to_diesel_duplicates() -> None:
    stations = merge_stations(
        [],
        [_row("A", "X", 700, "2024-02-02T00:00:00Z"), _row("A", "X", 690, "2024-02-01T00:00:00Z")],
        [],
    )

    assert stations[0].diesel_price == 700


def test_station_with_petrol_row_always_appears() -> None:
    stations = merge_stations([_row("Solo", "Lagos", None)], [], [], require_petrol=True)

    assert [station.station_name for station in stations] == ["Solo"]
    assert stations[0].petrol_price is None


def test_diesel_only_stations_follow_require_petrol_flag() -> None:
    petrol = [_row("A", "X", 600)]
    diesel = [_row("B", "X", 650)]
    kerosene = [_row("C", "Y", 400)]

    included = merge_stations(petrol, diesel, kerosene)
    petrol_only = merge_stations(petrol, diesel, kerosene, require_petrol=True)

    assert [station.station_name for station in included] == ["A", "B", "C"]
    assert [station.station_name for station in petrol_only] == ["A"]
    # counts still consider every table
    assert petrol_only[0].station_count == 2


def test_matching_is_exact_on_name_and_location() -> None:
    stations = merge_stations([_row("Shell", "Lagos", 600)], [_row("shell", "Lagos", 650)], [])

    assert len(stations) == 2
    assert stations[0].diesel_price is None
    assert stations[1].petrol_price is None


def test_rows_missing_name_or_location_are_dropped() -> None:
    stations = merge_stations(
        [None, {"station_name": "", "station_location": "X", "price": 1}, {"station_name": "A", "price": 2}],
        [],
        [],
    )

    assert stations == []


def test_malformed_price_becomes_none() -> None:
    stations = merge_stations([_row("A", "X", "not-a-number")], [], [])

    assert stations[0].petrol_price is None


def test_empty_tables_merge_to_empty_list() -> None:
    assert merge_stations(None, [], None) == []


def test_station_id_is_carried_from_first_row_that_has_one() -> None:
    stations = merge_stations(
        [_row("A", "X", 600)],
        [_row("A", "X", 650, station_id="11111111-1111-1111-1111-111111111111")],
        [],
    )

    assert stations[0].station_id == "11111111-1111-1111-1111-111111111111"


def test_count_stations_by_location() -> None:
    counts = count_stations_by_location(
        [_row("A", "X", 1), _row("A", "X", 2)],
        [_row("B", "X", 1)],
        [_row("A", "Z", 1)],
    )

    assert counts == {"X": 2, "Z": 1}


def test_group_by_location_preserves_station_order_and_slugs() -> None:
    stations = merge_stations(
        [_row("A", "Lagos Island", 600), _row("B", "Ibadan", 610), _row("C", "Lagos Island", 620)],
        [],
        [],
    )

    groups = group_by_location(stations)

    assert [group.slug for group in groups] == ["lagos-island", "ibadan"]
    assert [station.station_name for station in groups[0].stations] == ["A", "C"]
    assert groups[0].station_count == 2
    assert find_location(groups, "Ibadan") is groups[1]
    assert find_location(groups, "kano") is None


def test_filter_stations_matches_name_or_location_case_insensitively() -> None:
    stations = merge_stations([_row("Mobil Ikoyi", "Lagos", 1), _row("Total", "Abuja", 2)], [], [])

    assert [s.station_name for s in filter_stations(stations, "mobil")] == ["Mobil Ikoyi"]
    assert [s.station_name for s in filter_stations(stations, "ABUJA")] == ["Total"]
    assert len(filter_stations(stations, "  ")) == 2


def test_sort_stations_puts_missing_prices_last() -> None:
    stations = merge_stations(
        [_row("A", "X", 650), _row("B", "X", None), _row("C", "X", 600)],
        [],
        [],
    )

    ascending = sort_stations(stations, sort_by="petrol")
    descending = sort_stations(stations, sort_by="petrol", sort_dir="desc")

    assert [s.station_name for s in ascending] == ["C", "A", "B"]
    assert [s.station_name for s in descending] == ["A", "C", "B"]


def test_plan_price_inserts_skips_null_prices() -> None:
    assert plan_price_inserts({"petrol_price": 600, "diesel_price": 650, "kerosene_price": 500}) == [
        ("petrol", 600.0),
        ("diesel", 650.0),
        ("kerosene", 500.0),
    ]
    assert plan_price_inserts({"petrol_price": 600, "diesel_price": None}) == [("petrol", 600.0)]
    assert plan_price_inserts({}) == []
