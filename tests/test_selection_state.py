from src.integrations.contracts.selection import SelectionRecord
from src.sync.state import SelectionState


def test_set_selected_subitems_drops_sentinel():
    state = SelectionState()
    state.set_selected_subitems(["s1", "null", None, "s2"])
    assert state.snapshot().selected_subitems == frozenset({"s1", "s2"})


def test_add_and_remove_subitems():
    state = SelectionState()
    state.add_subitems(["s1", "s2"])
    state.add_subitems(["s2", "s3"])
    state.remove_subitems(["s1", "missing"])
    assert state.selected_except([]) == ["s2", "s3"]


def test_apply_record_replaces_owned_refs():
    state = SelectionState()
    state.apply_record(SelectionRecord("A", True, ["s1", "s2"]), ("s1", "s2"))
    state.apply_record(SelectionRecord("B", True, ["s3"]), ("s3",))

    state.apply_record(SelectionRecord("A", False, ["s1"]), ("s1", "s2"))

    snap = state.snapshot()
    assert snap.checked_by_item == {"A": False, "B": True}
    assert snap.selected_subitems == frozenset({"s1", "s3"})


def test_apply_record_is_idempotent():
    record = SelectionRecord("A", True, ["s2"])
    once = SelectionState()
    once.apply_record(record, ("s1", "s2"))
    twice = SelectionState()
    twice.apply_record(record, ("s1", "s2"))
    twice.apply_record(record, ("s1", "s2"))
    assert once.snapshot() == twice.snapshot()


def test_remove_item_drops_flag_and_refs():
    state = SelectionState()
    state.apply_record(SelectionRecord("B", True, ["s3"]), ("s3",))
    state.apply_record(SelectionRecord("D", True, ["s3", "s5"]), ("s3", "s5"))

    state.remove_item("B", ("s3",))

    snap = state.snapshot()
    assert "B" not in snap.checked_by_item
    assert snap.is_checked("D")
    assert snap.selected_subitems == frozenset({"s5"})


def test_snapshot_is_detached_copy():
    state = SelectionState()
    state.set_checked("A", True)
    snap = state.snapshot()
    state.set_checked("A", False)
    assert snap.is_checked("A")
    assert state.is_checked("A") is False
    assert state.is_checked("unknown") is None


def test_snapshot_to_dict_sorts_subitems():
    state = SelectionState()
    state.set_selected_subitems(["s2", "s1"])
    assert state.snapshot().to_dict() == {"checked_by_item": {}, "selected_subitems": ["s1", "s2"]}


def test_selected_among_keeps_given_order():
    state = SelectionState()
    state.set_selected_subitems(["s2", "s1", "s9"])
    assert state.selected_among(("s1", "s2", "s3")) == ["s1", "s2"]


def test_reset():
    state = SelectionState()
    state.apply_record(SelectionRecord("A", True, ["s1"]), ("s1",))
    state.reset()
    snap = state.snapshot()
    assert snap.checked_by_item == {}
    assert snap.selected_subitems == frozenset()
