import pytest

from src.integrations.contracts.selection import ChangeOp, event_from_notification, record_from_row
from src.sync.errors import MalformedEventError


def test_trigger_shape():
    event = event_from_notification(
        {"op": "update", "record": {"item_id": "A", "is_checked": True, "selected_subitems": ["s1", "null"]}}
    )
    assert event.op is ChangeOp.UPDATE
    assert event.record.item_id == "A"
    assert event.record.is_checked is True
    assert event.record.selected_subitems == ["s1"]


def test_realtime_shape_insert_and_delete():
    insert = event_from_notification(
        {"eventType": "INSERT", "new": {"item_id": "B", "is_checked": False, "selected_subitems": []}, "old": {}}
    )
    assert insert.op is ChangeOp.INSERT
    assert insert.record.item_id == "B"

    delete = event_from_notification({"eventType": "DELETE", "new": {}, "old": {"item_id": "B"}})
    assert delete.op is ChangeOp.DELETE
    assert delete.record.item_id == "B"


def test_missing_fields_default():
    event = event_from_notification({"op": "insert", "record": {"item_id": "A"}})
    assert event.record.is_checked is False
    assert event.record.selected_subitems == []


def test_null_subitems_treated_as_empty():
    event = event_from_notification({"op": "update", "record": {"item_id": "A", "selected_subitems": None}})
    assert event.record.selected_subitems == []


@pytest.mark.parametrize(
    "raw",
    [
        "not an object",
        {"op": "truncate", "record": {"item_id": "A"}},
        {"op": "update"},
        {"op": "update", "record": {}},
        {"op": "update", "record": {"item_id": "A", "selected_subitems": "s1"}},
        {"op": "update", "record": {"item_id": "  "}},
        {"op": "update", "record": {"is_checked": True}},
    ],
)
def test_malformed_notifications(raw):
    with pytest.raises(MalformedEventError):
        event_from_notification(raw)


def test_malformed_subitems_carries_item_id():
    with pytest.raises(MalformedEventError) as info:
        event_from_notification({"op": "update", "record": {"item_id": "A", "selected_subitems": {"s1": True}}})
    assert info.value.item_id == "A"


def test_seed_rows_are_lenient():
    record = record_from_row({"item_id": "A", "is_checked": True, "selected_subitems": "garbage"})
    assert record.is_checked is True
    assert record.selected_subitems == []

    record = record_from_row({"item_id": "B", "is_checked": None, "selected_subitems": ["s3", None, "null"]})
    assert record.is_checked is False
    assert record.selected_subitems == ["s3"]
