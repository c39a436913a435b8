from datetime import datetime

import pytest

from labresult.errors import ResultNotFound
from labresult.modules.panel.hydrate import hydrate_edit_session
from labresult.modules.panel.reconcile import reconcile
from labresult.modules.panel.schema import LoadStatus, Visibility
from labresult.modules.result.model import PatientResult, ResultValue


async def make_result(catalog, values: dict[str, str]) -> tuple[str, dict[str, str]]:
    result = await PatientResult(
        patient_id="p1",
        doctor_id="d1",
        result_date=datetime(2024, 1, 10),
        total_price=1500.5,
    ).insert()
    value_ids = {}
    for parameter_id, value in values.items():
        row = await ResultValue(
            patient_result_id=str(result.id),
            test_parameter_id=parameter_id,
            value=value,
        ).insert()
        value_ids[parameter_id] = str(row.id)
    return str(result.id), value_ids


async def test_hydrate_builds_ready_entries_with_full_parameter_lists(catalog):
    result_id, value_ids = await make_result(catalog, {catalog.wbc: "5.8"})

    session = await hydrate_edit_session(result_id)

    assert session.panel.selected_ids() == [catalog.hemogram]
    entry = session.panel.entry(catalog.hemogram)
    assert entry.status == LoadStatus.READY
    assert entry.test_type_name == "Hemogram"
    assert set(entry.parameters) == {catalog.wbc, catalog.rbc}

    wbc = entry.parameters[catalog.wbc]
    assert wbc.value == "5.8"
    assert wbc.origin_value_id == value_ids[catalog.wbc]
    assert wbc.visibility == Visibility.VISIBLE
    rbc = entry.parameters[catalog.rbc]
    assert rbc.value == ""
    assert rbc.origin_value_id is None


async def test_hydrate_returns_snapshot_and_header(catalog):
    result_id, value_ids = await make_result(
        catalog, {catalog.wbc: "5.8", catalog.cholesterol: "180"}
    )

    session = await hydrate_edit_session(result_id)

    assert set(session.panel.selected_ids()) == {catalog.hemogram, catalog.lipid}
    assert {v.id for v in session.original_snapshot} == set(value_ids.values())
    by_parameter = {v.test_parameter_id: v for v in session.original_snapshot}
    assert by_parameter[catalog.cholesterol].test_type_id == catalog.lipid
    assert session.header.patient_id == "p1"
    assert session.header.doctor_id == "d1"
    assert session.header.total_price == "1500.50"
    assert session.header.amount_paid is None


async def test_hydrate_result_without_values_is_empty(catalog):
    result_id, _ = await make_result(catalog, {})

    session = await hydrate_edit_session(result_id)

    assert session.panel.entries == {}
    assert session.original_snapshot == ()


async def test_hydrate_missing_result(db):
    with pytest.raises(ResultNotFound):
        await hydrate_edit_session("65a000000000000000000000")


async def test_hydrate_malformed_result_id(db):
    with pytest.raises(ResultNotFound):
        await hydrate_edit_session("not-an-id")


async def test_hydrate_duplicate_rows_point_at_the_row_that_is_kept(catalog):
    result_id, value_ids = await make_result(catalog, {catalog.wbc: "5.8"})
    duplicate = await ResultValue(
        patient_result_id=result_id, test_parameter_id=catalog.wbc, value="6.1"
    ).insert()

    session = await hydrate_edit_session(result_id)

    wbc = session.panel.entry(catalog.hemogram).parameters[catalog.wbc]
    assert wbc.origin_value_id == value_ids[catalog.wbc]
    assert wbc.value == "5.8"
    plan = reconcile(session.panel, session.original_snapshot)
    assert [u.id for u in plan.to_update] == [wbc.origin_value_id]
    assert plan.to_delete == [str(duplicate.id)]
