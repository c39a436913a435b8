import asyncio

import pytest

from labresult.errors import CatalogUnavailable
from labresult.modules.catalog.schema import TestParameterResponse
from labresult.modules.panel.loader import load_parameters
from labresult.modules.panel.schema import LoadStatus, PanelState
from labresult.modules.panel.session import FormClosed, ResultFormSession


def param(parameter_id: str, test_type_id: str):
    return TestParameterResponse(
        id=parameter_id, test_type_id=test_type_id, name=parameter_id.upper()
    )


CATALOG = {
    "hemo": [param("rbc", "hemo"), param("wbc", "hemo")],
    "lipid": [param("chol", "lipid")],
}


class GatedCatalog:
    """Parameter fetch that only returns once the test releases it."""

    def __init__(self):
        self.gates: dict[str, list[asyncio.Event]] = {}
        self.failing: set[str] = set()

    async def fetch(self, test_type_id: str):
        gate = asyncio.Event()
        self.gates.setdefault(test_type_id, []).append(gate)
        await gate.wait()
        if test_type_id in self.failing:
            raise CatalogUnavailable(test_type_id)
        return CATALOG[test_type_id]

    def release(self, test_type_id: str, index: int = 0):
        self.gates[test_type_id][index].set()


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


async def test_load_parameters_returns_guarded_update():
    async def fetch(test_type_id):
        return CATALOG[test_type_id]

    panel = PanelState().select("hemo")
    update = await load_parameters("hemo", panel.entry("hemo").generation, fetch)

    assert update(panel).entry("hemo").status == LoadStatus.READY
    assert update(panel.deselect("hemo")).entry("hemo") is None


async def test_load_parameters_failure_marks_error():
    async def fetch(test_type_id):
        raise CatalogUnavailable(test_type_id)

    panel = PanelState().select("hemo")
    update = await load_parameters("hemo", panel.entry("hemo").generation, fetch)

    assert update(panel).entry("hemo").status == LoadStatus.ERROR


async def test_stale_fetch_after_deselect_does_not_resurrect_the_type():
    catalog = GatedCatalog()
    session = ResultFormSession(patient_id="p1", fetch_parameters=catalog.fetch)

    task = session.select("hemo")
    await settle()
    session.deselect("hemo")
    catalog.release("hemo")
    await task

    assert session.panel.entry("hemo") is None


async def test_reselect_only_commits_the_newest_fetch():
    catalog = GatedCatalog()
    session = ResultFormSession(patient_id="p1", fetch_parameters=catalog.fetch)

    first = session.select("hemo")
    await settle()
    session.deselect("hemo")
    second = session.select("hemo")
    await settle()

    catalog.release("hemo", 0)
    await first
    assert session.panel.entry("hemo").status == LoadStatus.LOADING

    catalog.release("hemo", 1)
    await second
    assert session.panel.entry("hemo").status == LoadStatus.READY


async def test_concurrent_loads_are_independent():
    catalog = GatedCatalog()
    catalog.failing.add("lipid")
    session = ResultFormSession(patient_id="p1", fetch_parameters=catalog.fetch)

    session.select("hemo", "Hemogram")
    session.select("lipid", "Lipid Panel")
    await settle()
    assert session.panel.load_flags() == {
        "hemo": LoadStatus.LOADING,
        "lipid": LoadStatus.LOADING,
    }

    catalog.release("lipid")
    catalog.release("hemo")
    await session.wait_idle()

    assert session.panel.load_flags() == {
        "hemo": LoadStatus.READY,
        "lipid": LoadStatus.ERROR,
    }
    assert session.messages == ["Unable to load parameters for Lipid Panel."]


async def test_reload_retries_a_failed_selection():
    catalog = GatedCatalog()
    catalog.failing.add("lipid")
    session = ResultFormSession(patient_id="p1", fetch_parameters=catalog.fetch)

    task = session.select("lipid")
    await settle()
    catalog.release("lipid")
    await task
    assert session.panel.entry("lipid").status == LoadStatus.ERROR

    catalog.failing.clear()
    task = session.reload("lipid")
    await settle()
    catalog.release("lipid", 1)
    await task

    assert session.panel.entry("lipid").status == LoadStatus.READY
    assert list(session.panel.entry("lipid").parameters) == ["chol"]


async def test_reload_of_unselected_type_is_a_noop():
    session = ResultFormSession(patient_id="p1", fetch_parameters=GatedCatalog().fetch)
    assert session.reload("hemo") is None


async def test_closed_form_drops_late_results_and_rejects_edits():
    catalog = GatedCatalog()
    session = ResultFormSession(patient_id="p1", fetch_parameters=catalog.fetch)

    task = session.select("hemo")
    await settle()
    panel_before_close = session.panel
    session.close()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert session.panel is panel_before_close
    with pytest.raises(FormClosed):
        session.select("lipid")
    with pytest.raises(FormClosed):
        session.set_value("hemo", "wbc", "1")


async def test_edit_form_keeps_its_patient():
    session = ResultFormSession(patient_id="p1", fetch_parameters=GatedCatalog().fetch)
    session.result_id = "r1"

    session.set_header(session.header.model_copy(update={"patient_id": "p2"}))

    assert session.header.patient_id == "p1"


async def test_unexpected_fetch_error_marks_the_selection_failed():
    async def fetch(test_type_id):
        if test_type_id == "lipid":
            raise RuntimeError("decoder blew up")
        return CATALOG[test_type_id]

    session = ResultFormSession(patient_id="p1", fetch_parameters=fetch)
    session.select("hemo", "Hemogram")
    session.select("lipid", "Lipid Panel")
    await session.wait_idle()

    assert session.panel.load_flags() == {
        "hemo": LoadStatus.READY,
        "lipid": LoadStatus.ERROR,
    }
    assert session.messages == ["Unable to load parameters for Lipid Panel."]
