from fuelwatch.core.slugs import normalize_station_text, slugify


def test_slugify_lowercases_and_dashes_whitespace() -> None:
    assert slugify("Lagos Island") == "lagos-island"


def test_slugify_strips_punctuation_and_collapses_dashes() -> None:
    assert slugify("  Port   Harcourt -- GRA, (Phase 2)!  ") == "port-harcourt-gra-phase-2"


def test_slugify_of_symbols_only_is_empty() -> None:
    assert slugify("&&&") == ""


def test_normalize_station_text_collapses_whitespace() -> None:
    assert normalize_station_text("  Mobil   Ikoyi \t") == "Mobil Ikoyi"
    assert normalize_station_text("   ") is None
    assert normalize_station_text(None) is None
