import asyncio

from loguru import logger
from pydantic import BaseModel, ConfigDict
from pymongo.errors import PyMongoError

from labresult.errors import PersistenceError
from labresult.modules.catalog.service import get_test_types, list_parameters_for_types
from labresult.modules.panel.schema import (
    LoadStatus,
    PanelState,
    ParameterEntry,
    SelectionEntry,
)
from labresult.modules.result.schema import HeaderFields, StoredValue
from labresult.modules.result.storage import get_result_header, load_stored_values


class HydratedSession(BaseModel):
    result_id: str
    header: HeaderFields
    panel: PanelState
    original_snapshot: tuple[StoredValue, ...]

    model_config = ConfigDict(frozen=True)


async def hydrate_edit_session(result_id: str) -> HydratedSession:
    """
    Rebuild the form of an existing result.

    Every test type that has at least one stored value comes back selected and
    ready with its full parameter list; stored values fill the matching
    entries and remember the row they came from. The stored rows themselves
    are returned untouched as the original snapshot.

    Raises ResultNotFound when the header does not exist, CatalogUnavailable
    when the parameter definitions cannot be read.
    """
    logger.info(f"Hydrating edit session for result {result_id}")
    try:
        header, stored_values = await asyncio.gather(
            get_result_header(result_id),
            load_stored_values(result_id),
        )
    except PyMongoError as exc:
        logger.error(f"Failed to load result {result_id}: {exc}")
        raise PersistenceError(
            "load_result", str(exc), code=getattr(exc, "code", None)
        ) from exc

    involved_ids = list(
        dict.fromkeys(v.test_type_id for v in stored_values if v.test_type_id)
    )
    parameters, test_types = await asyncio.gather(
        list_parameters_for_types(involved_ids),
        get_test_types(involved_ids),
    )
    names = {tt.id: tt.name for tt in test_types}
    # first row wins, the same row reconcile keeps for duplicates
    stored_by_parameter: dict[str, StoredValue] = {}
    for stored in stored_values:
        stored_by_parameter.setdefault(stored.test_parameter_id, stored)

    entries: dict[str, SelectionEntry] = {}
    for generation, test_type_id in enumerate(involved_ids, start=1):
        parameter_entries: dict[str, ParameterEntry] = {}
        for parameter in parameters:
            if parameter.test_type_id != test_type_id:
                continue
            entry = ParameterEntry.from_parameter(parameter)
            stored = stored_by_parameter.get(parameter.id)
            if stored is not None:
                entry = entry.model_copy(
                    update={"value": stored.value, "origin_value_id": stored.id}
                )
            parameter_entries[parameter.id] = entry
        entries[test_type_id] = SelectionEntry(
            test_type_id=test_type_id,
            test_type_name=names.get(test_type_id),
            status=LoadStatus.READY,
            generation=generation,
            parameters=parameter_entries,
        )
    panel = PanelState(entries=entries, clock=len(involved_ids))

    logger.info(
        f"Result {result_id} hydrated: {len(stored_values)} stored values "
        f"across {len(involved_ids)} test types"
    )
    return HydratedSession(
        result_id=result_id,
        header=HeaderFields(
            patient_id=header.patient_id,
            doctor_id=header.doctor_id,
            result_date=header.result_date,
            total_price=_price_text(header.total_price),
            amount_paid=_price_text(header.amount_paid),
        ),
        panel=panel,
        original_snapshot=tuple(stored_values),
    )


def _price_text(price: float | None) -> str | None:
    if price is None:
        return None
    return f"{price:.2f}"
