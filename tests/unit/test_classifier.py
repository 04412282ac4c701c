from __future__ import annotations

from datetime import datetime, timezone

import pytest

from odoo_bridge.polling.classifier import (
    ChangeEvent,
    EventKind,
    classify,
    parse_odoo_timestamp,
    record_id_of,
)


@pytest.mark.unit
@pytest.mark.parametrize(
    "record, on_create, on_modify, expected",
    [
        ({"create_date": "2024-01-15 10:00:00", "write_date": "2024-01-15 10:00:00"}, True, True, EventKind.CREATED),
        ({"create_date": "2024-01-15 10:00:00", "write_date": "2024-01-15 10:00:01"}, True, True, EventKind.MODIFIED),
        ({"create_date": "2024-01-15 10:00:00", "write_date": "2024-01-15 10:00:00"}, False, True, None),
        ({"create_date": "2024-01-15 10:00:00", "write_date": "2024-01-15 10:05:00"}, True, False, None),
        ({"create_date": False, "write_date": False}, True, True, EventKind.MODIFIED),
        ({"write_date": "2024-01-15 10:00:00"}, True, True, EventKind.MODIFIED),
        ({}, True, False, None),
    ],
)
def test_classify(record, on_create, on_modify, expected) -> None:
    assert classify(record, on_create, on_modify) is expected


@pytest.mark.unit
def test_record_id_rejects_non_numeric_values() -> None:
    assert record_id_of({"id": 12}) == 12
    assert record_id_of({"id": 12.0}) == 12
    assert record_id_of({"id": False}) is None
    assert record_id_of({"id": "12"}) is None
    assert record_id_of({}) is None


@pytest.mark.unit
def test_timestamps_parse_odoo_and_iso_formats_as_utc() -> None:
    expected = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    assert parse_odoo_timestamp("2024-01-15 10:30:00") == expected
    assert parse_odoo_timestamp("2024-01-15T10:30:00Z") == expected
    assert parse_odoo_timestamp("2024-01-15T12:30:00+02:00") == expected
    assert parse_odoo_timestamp(False) is None
    assert parse_odoo_timestamp("yesterday") is None


@pytest.mark.unit
def test_change_event_variables_use_tracking_field_timestamp() -> None:
    record = {
        "id": 9,
        "create_date": "2024-01-15 09:00:00",
        "write_date": "2024-01-15 10:30:00",
        "name": "Acme",
    }
    fallback = datetime(2030, 1, 1, tzinfo=timezone.utc)
    event = ChangeEvent.from_record(
        "res.partner", record, EventKind.MODIFIED, "write_date", now=lambda: fallback
    )

    assert event.to_variables() == {
        "odooModel": "res.partner",
        "odooRecordId": 9,
        "odooEventType": "write",
        "odooRecord": record,
        "odooTimestamp": "2024-01-15T10:30:00Z",
        "odooFields": ["id", "create_date", "write_date", "name"],
    }


@pytest.mark.unit
def test_change_event_falls_back_to_now_without_timestamp() -> None:
    fallback = datetime(2030, 1, 1, tzinfo=timezone.utc)
    event = ChangeEvent.from_record(
        "res.partner", {"id": 1}, EventKind.MODIFIED, "write_date", now=lambda: fallback
    )

    assert event.change_timestamp == fallback
    with pytest.raises(ValueError):
        ChangeEvent.from_record("res.partner", {}, EventKind.MODIFIED, "write_date")
