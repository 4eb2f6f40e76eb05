from __future__ import annotations

from datetime import UTC, datetime

from duel_ledger.core.fields import as_float, as_id, as_int, at, first_of
from duel_ledger.core.text import normalize_iso2, normalize_mode_label
from duel_ledger.ingestion.dates import parse_api_datetime, seconds_between
from duel_ledger.ingestion.progress import format_eta


def test_accessors_walk_dicts_and_lists() -> None:
    payload = {"a": {"b": [10, {"c": "x"}]}}

    assert at("a", "b", 0)(payload) == 10
    assert at("a", "b", 1, "c")(payload) == "x"
    assert at("a", "b", 5)(payload) is None
    assert at("a", "zz", "c")(payload) is None
    assert at("a", "b", "c")(payload) is None


def test_first_of_skips_values_the_parser_rejects() -> None:
    payload = {"lat": "n/a", "latitude": "48.5", "location": {"lat": 1.0}}
    accessors = (at("lat"), at("latitude"), at("location", "lat"))

    assert first_of(payload, accessors, as_float) == 48.5
    assert first_of({}, accessors, as_float) is None


def test_numeric_coercions() -> None:
    assert as_float("1e3") == 1000.0
    assert as_float(float("nan")) is None
    assert as_float(True) is None
    assert as_int(5.0) == 5
    assert as_int(5.5) is None
    assert as_id(123) == "123"
    assert as_id(" abc ") == "abc"
    assert as_id(False) is None


def test_text_normalizers() -> None:
    assert normalize_iso2(" DE ") == "de"
    assert normalize_iso2("DEU") is None
    assert normalize_iso2("") is None
    assert normalize_mode_label("  Team   Duels ") == "Team Duels"
    assert normalize_mode_label("   ") is None


def test_api_datetimes() -> None:
    expected = datetime(2026, 1, 5, 10, 0, tzinfo=UTC)

    assert parse_api_datetime("2026-01-05T10:00:00Z") == expected
    assert parse_api_datetime(int(expected.timestamp() * 1000)) == expected
    assert parse_api_datetime(str(int(expected.timestamp() * 1000))) == expected
    assert parse_api_datetime("yesterday") is None
    assert parse_api_datetime(True) is None
    assert seconds_between(expected, datetime(2026, 1, 5, 9, 0, tzinfo=UTC)) is None


def test_format_eta() -> None:
    assert format_eta(None) == "?"
    assert format_eta(12.4) == "12s"
    assert format_eta(65) == "1m 05s"
