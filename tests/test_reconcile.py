from labresult.modules.catalog.schema import TestParameterResponse
from labresult.modules.panel.reconcile import reconcile
from labresult.modules.panel.schema import PanelState
from labresult.modules.result.schema import StoredValue, ValueInsert, ValueUpdate


def param(parameter_id: str, test_type_id: str):
    return TestParameterResponse(
        id=parameter_id, test_type_id=test_type_id, name=parameter_id.upper()
    )


def stored(value_id: str, parameter_id: str, value: str) -> StoredValue:
    return StoredValue(
        id=value_id,
        patient_result_id="r1",
        test_parameter_id=parameter_id,
        value=value,
    )


def panel_with(**types: list[str]) -> PanelState:
    panel = PanelState()
    for test_type_id, parameter_ids in types.items():
        panel = panel.select(test_type_id)
        panel = panel.complete_load(
            test_type_id,
            panel.entry(test_type_id).generation,
            [param(p, test_type_id) for p in parameter_ids],
        )
    return panel


def test_diff_updates_deletes_and_inserts():
    snapshot = [stored("va", "a", "1"), stored("vb", "b", "2")]
    panel = (
        panel_with(t1=["a", "b", "c"])
        .set_value("t1", "a", "5")
        .set_value("t1", "b", "2")
        .remove_parameter("t1", "b")
        .set_value("t1", "c", "3")
    )

    plan = reconcile(panel, snapshot)

    assert plan.to_update == [ValueUpdate(id="va", value="5")]
    assert plan.to_delete == ["vb"]
    assert plan.to_insert == [ValueInsert(parameter_id="c", value="3")]


def test_deselected_type_deletes_its_values():
    snapshot = [stored("va", "a", "1"), stored("vb", "b", "2")]
    panel = panel_with(t1=["a"], t2=["b"]).set_value("t1", "a", "1").deselect("t2")

    plan = reconcile(panel, snapshot)

    assert plan.to_delete == ["vb"]
    assert plan.to_update == [ValueUpdate(id="va", value="1")]
    assert plan.to_insert == []


def test_blank_value_clears_the_stored_row():
    snapshot = [stored("va", "a", "1")]
    panel = panel_with(t1=["a"]).set_value("t1", "a", "   ")

    plan = reconcile(panel, snapshot)

    assert plan.to_delete == ["va"]
    assert plan.to_update == []
    assert plan.to_insert == []


def test_values_are_trimmed_and_blank_new_entries_skipped():
    panel = panel_with(t1=["a", "b"]).set_value("t1", "a", "  6.2 ")

    plan = reconcile(panel, [])

    assert plan.to_insert == [ValueInsert(parameter_id="a", value="6.2")]
    assert plan.to_update == []
    assert plan.to_delete == []


def test_removed_parameter_with_value_is_not_inserted():
    panel = panel_with(t1=["a"]).set_value("t1", "a", "4").remove_parameter("t1", "a")

    assert reconcile(panel, []).is_empty


def test_each_parameter_lands_in_one_set_only():
    snapshot = [stored(f"v{i}", p, "1") for i, p in enumerate("abcd")]
    panel = (
        panel_with(t1=["a", "b", "c", "e"])
        .set_value("t1", "a", "2")
        .set_value("t1", "b", "")
        .remove_parameter("t1", "c")
        .set_value("t1", "e", "9")
    )

    plan = reconcile(panel, snapshot)

    by_id = {s.id: s.test_parameter_id for s in snapshot}
    deleted = {by_id[i] for i in plan.to_delete}
    updated = {by_id[u.id] for u in plan.to_update}
    inserted = {i.parameter_id for i in plan.to_insert}
    assert deleted == {"b", "c", "d"}
    assert updated == {"a"}
    assert inserted == {"e"}
    assert not (deleted & updated or deleted & inserted or updated & inserted)


def test_duplicate_stored_rows_keep_the_first():
    snapshot = [stored("v1", "a", "1"), stored("v2", "a", "1")]
    panel = panel_with(t1=["a"]).set_value("t1", "a", "3")

    plan = reconcile(panel, snapshot)

    assert plan.to_update == [ValueUpdate(id="v1", value="3")]
    assert plan.to_delete == ["v2"]


def test_reconcile_is_pure():
    snapshot = (stored("va", "a", "1"), stored("vb", "b", "2"))
    panel = panel_with(t1=["a", "b", "c"]).set_value("t1", "a", "5").set_value("t1", "c", "3")

    first = reconcile(panel, snapshot)
    second = reconcile(panel, snapshot)

    assert first == second
    assert snapshot == (stored("va", "a", "1"), stored("vb", "b", "2"))
