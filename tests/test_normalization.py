from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

from crewmap.ingestion.normalize import normalize_device_id, parse_timestamp, safe_float
from crewmap.ingestion.positions import normalize_positions, positions_from_message


def test_safe_float_rejects_bool_nan_and_garbage() -> None:
    assert safe_float("52.5") == 52.5
    assert safe_float(True) is None
    assert safe_float(float("nan")) is None
    assert safe_float("north") is None
    assert safe_float("") is None


def test_device_id_normalized_to_string() -> None:
    assert normalize_device_id(42) == "42"
    assert normalize_device_id(42.0) == "42"
    assert normalize_device_id(" 7 ") == "7"
    assert normalize_device_id(None) is None


def test_parse_timestamp_iso_with_z_suffix() -> None:
    assert parse_timestamp("2026-03-01T10:00:00Z") == datetime(2026, 3, 1, 10, 0, tzinfo=UTC)


def test_parse_timestamp_keeps_offset() -> None:
    parsed = parse_timestamp("2026-03-01T12:00:00+02:00")
    assert parsed is not None
    assert parsed.utcoffset() == timedelta(hours=2)
    assert parsed == datetime(2026, 3, 1, 10, 0, tzinfo=UTC)


def test_parse_timestamp_naive_treated_as_utc() -> None:
    assert parse_timestamp("2026-03-01T10:00:00") == datetime(2026, 3, 1, 10, 0, tzinfo=UTC)
    naive = datetime(2026, 3, 1, 10, 0)
    assert parse_timestamp(naive) == datetime(2026, 3, 1, 10, 0, tzinfo=UTC)
    aware = datetime(2026, 3, 1, 10, 0, tzinfo=timezone(timedelta(hours=-5)))
    assert parse_timestamp(aware) is aware


def test_parse_timestamp_epoch_seconds_and_milliseconds() -> None:
    expected = datetime.fromtimestamp(1_770_928_447, tz=UTC)
    assert parse_timestamp(1_770_928_447) == expected
    assert parse_timestamp(1_770_928_447_000) == expected


def test_parse_timestamp_unparseable() -> None:
    assert parse_timestamp("yesterday") is None
    assert parse_timestamp("") is None
    assert parse_timestamp(None) is None


def test_normalize_positions_drops_unusable_records_and_keeps_order() -> None:
    records = [
        {"deviceId": 2, "latitude": 1.0, "longitude": 2.0, "fixTime": "2026-03-01T10:00:00Z"},
        {"deviceId": 3, "latitude": None, "longitude": 2.0, "fixTime": "2026-03-01T10:00:00Z"},
        {"deviceId": 4, "latitude": 1.0, "longitude": 2.0},
        "not a record",
        {"deviceId": 1, "latitude": 91.0, "longitude": 2.0, "fixTime": "2026-03-01T10:00:00Z"},
        {"deviceId": 1, "latitude": 3.0, "longitude": 4.0, "deviceTime": "2026-03-01T10:01:00Z"},
    ]

    positions = normalize_positions(records)

    assert [p.device_id for p in positions] == ["2", "1"]
    assert positions[1].observed_at == datetime(2026, 3, 1, 10, 1, tzinfo=UTC)


def test_positions_from_message() -> None:
    assert positions_from_message({"devices": [{"id": 1}]}) is None
    assert positions_from_message("positions") is None
    assert positions_from_message({"positions": []}) == []

    batch = positions_from_message(
        {"positions": [{"deviceId": 9, "latitude": 1.5, "longitude": 2.5, "fixTime": "2026-03-01T10:00:00Z"}]}
    )
    assert batch is not None
    assert batch[0].device_id == "9"
    assert batch[0].coordinates == (1.5, 2.5)
