from datetime import datetime, timedelta, timezone

import pytest

from model_rotation.utils import format_timestamp, parse_timestamp


def test_format_uses_utc_milliseconds_and_z() -> None:
    value = datetime(2026, 1, 5, 12, 0, 0, 123456, tzinfo=timezone(timedelta(hours=2)))

    assert format_timestamp(value) == "2026-01-05T10:00:00.123Z"


def test_format_treats_naive_as_utc() -> None:
    assert format_timestamp(datetime(2026, 1, 5, 10, 0)) == "2026-01-05T10:00:00.000Z"


@pytest.mark.parametrize(
    "text",
    ["2026-01-05T10:00:00.000Z", "2026-01-05T10:00:00+00:00", "2026-01-05T12:00:00+02:00"],
)
def test_parse_accepts_offsets(text: str) -> None:
    assert parse_timestamp(text) == datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)


def test_parse_empty_values() -> None:
    assert parse_timestamp(None) is None
    assert parse_timestamp("") is None


@pytest.mark.parametrize("value", ["yesterday", 12])
def test_parse_rejects_invalid(value) -> None:
    with pytest.raises(ValueError):
        parse_timestamp(value)
