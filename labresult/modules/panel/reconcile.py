from typing import Iterable

from labresult.modules.panel.schema import PanelState
from labresult.modules.result.schema import (
    ReconcilePlan,
    StoredValue,
    ValueInsert,
    ValueUpdate,
)


def reconcile(
    panel: PanelState,
    original_snapshot: Iterable[StoredValue],
) -> ReconcilePlan:
    """
    Diff the panel against the values stored before the session started.

    A stored value is deleted when its parameter is no longer visible (removed,
    or its test type deselected) or was cleared to blank. A visible parameter
    with a non-blank value updates its stored row, or is inserted when it has
    none. Each parameter lands in at most one of the three lists.
    """
    final_values_to_save: dict[str, str] = {}
    final_visible_param_ids: set[str] = set()
    for entry in panel.entries.values():
        for parameter in entry.parameters.values():
            if not parameter.is_visible:
                continue
            final_visible_param_ids.add(parameter.parameter_id)
            value = parameter.value.strip()
            if value:
                final_values_to_save[parameter.parameter_id] = value

    original_by_parameter: dict[str, StoredValue] = {}
    to_delete: list[str] = []
    for stored in original_snapshot:
        parameter_id = stored.test_parameter_id
        if (
            parameter_id not in final_visible_param_ids
            or parameter_id not in final_values_to_save
            # duplicate row for a parameter, the first one is kept
            or parameter_id in original_by_parameter
        ):
            to_delete.append(stored.id)
        original_by_parameter.setdefault(parameter_id, stored)

    to_insert: list[ValueInsert] = []
    to_update: list[ValueUpdate] = []
    for parameter_id, value in final_values_to_save.items():
        original = original_by_parameter.get(parameter_id)
        if original is not None:
            to_update.append(ValueUpdate(id=original.id, value=value))
        else:
            to_insert.append(ValueInsert(parameter_id=parameter_id, value=value))

    return ReconcilePlan(to_insert=to_insert, to_update=to_update, to_delete=to_delete)
