"""
Session-local model of the result form's test panel.

`PanelState` maps a test type id to its `SelectionEntry`. Every operation
returns a new `PanelState` and leaves the receiver untouched, so a renderer can
keep reading an older snapshot while the form moves on.

Each selection is stamped with a generation taken from a panel-wide clock that
only moves forward. A parameter fetch remembers the generation it was started
for and may only commit while the entry is still loading under that same
generation: a deselect, a newer select or a reload in the meantime makes the
fetch stale.
"""

from enum import Enum

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from labresult.modules.catalog.schema import TestParameterResponse
from labresult.modules.result.schema import HeaderFields, RangeStatus


class LoadStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class Visibility(str, Enum):
    VISIBLE = "visible"
    REMOVED = "removed"


class ParameterEntry(BaseModel):
    parameter_id: str
    name: str
    unit: str | None = None
    reference_range: str | None = None
    value: str = ""
    visibility: Visibility = Visibility.VISIBLE
    # id of the stored value this entry was hydrated from, never reassigned
    origin_value_id: str | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_visible(self) -> bool:
        return self.visibility == Visibility.VISIBLE

    @classmethod
    def from_parameter(cls, parameter: TestParameterResponse) -> "ParameterEntry":
        return cls(
            parameter_id=parameter.id,
            name=parameter.name,
            unit=parameter.unit,
            reference_range=parameter.reference_range,
        )


class SelectionEntry(BaseModel):
    test_type_id: str
    test_type_name: str | None = None
    status: LoadStatus = LoadStatus.LOADING
    generation: int = 0
    parameters: dict[str, ParameterEntry] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


def merge_parameters(
    fetched: list[TestParameterResponse],
    existing: dict[str, ParameterEntry],
) -> dict[str, ParameterEntry]:
    """
    Build the entries for freshly fetched definitions, in fetch order.

    Value, visibility and origin of an entry already known for the same
    parameter are carried over, display data is refreshed from the fetch.
    Entries for parameters absent from the fetch are dropped.
    """
    merged: dict[str, ParameterEntry] = {}
    for parameter in fetched:
        fresh = ParameterEntry.from_parameter(parameter)
        previous = existing.get(parameter.id)
        if previous is not None:
            fresh = fresh.model_copy(
                update={
                    "value": previous.value,
                    "visibility": previous.visibility,
                    "origin_value_id": previous.origin_value_id,
                }
            )
        merged[parameter.id] = fresh
    return merged


class PanelState(BaseModel):
    entries: dict[str, SelectionEntry] = Field(default_factory=dict)
    clock: int = 0

    model_config = ConfigDict(frozen=True)

    # ---------- reads ----------

    def entry(self, test_type_id: str) -> SelectionEntry | None:
        return self.entries.get(test_type_id)

    def is_selected(self, test_type_id: str) -> bool:
        return test_type_id in self.entries

    def selected_ids(self) -> list[str]:
        return list(self.entries)

    def load_flags(self) -> dict[str, LoadStatus]:
        return {tt_id: entry.status for tt_id, entry in self.entries.items()}

    def is_loading(self) -> bool:
        return any(e.status == LoadStatus.LOADING for e in self.entries.values())

    # ---------- user operations ----------

    def select(
        self, test_type_id: str, test_type_name: str | None = None
    ) -> "PanelState":
        if test_type_id in self.entries:
            return self
        generation = self.clock + 1
        entry = SelectionEntry(
            test_type_id=test_type_id,
            test_type_name=test_type_name,
            status=LoadStatus.LOADING,
            generation=generation,
        )
        return self._replace({**self.entries, test_type_id: entry}, clock=generation)

    def deselect(self, test_type_id: str) -> "PanelState":
        if test_type_id not in self.entries:
            return self
        entries = dict(self.entries)
        del entries[test_type_id]
        return self._replace(entries)

    def reload(self, test_type_id: str) -> "PanelState":
        """Back to loading under a new generation, parameter entries kept."""
        entry = self.entries.get(test_type_id)
        if entry is None:
            return self
        generation = self.clock + 1
        reloading = entry.model_copy(
            update={"status": LoadStatus.LOADING, "generation": generation}
        )
        return self._replace(
            {**self.entries, test_type_id: reloading}, clock=generation
        )

    def set_value(
        self, test_type_id: str, parameter_id: str, value: str
    ) -> "PanelState":
        return self._update_parameter(test_type_id, parameter_id, {"value": value})

    def remove_parameter(self, test_type_id: str, parameter_id: str) -> "PanelState":
        # no restore: deselect then select the type to get it back
        return self._update_parameter(
            test_type_id, parameter_id, {"visibility": Visibility.REMOVED}
        )

    # ---------- loader commits ----------

    def is_current(self, test_type_id: str, generation: int) -> bool:
        entry = self.entries.get(test_type_id)
        return (
            entry is not None
            and entry.status == LoadStatus.LOADING
            and entry.generation == generation
        )

    def complete_load(
        self,
        test_type_id: str,
        generation: int,
        parameters: list[TestParameterResponse],
    ) -> "PanelState":
        if not self.is_current(test_type_id, generation):
            logger.warning(
                f"Discarding stale parameters for test type {test_type_id} "
                f"(generation {generation})"
            )
            return self
        entry = self.entries[test_type_id]
        ready = entry.model_copy(
            update={
                "status": LoadStatus.READY,
                "parameters": merge_parameters(parameters, entry.parameters),
            }
        )
        return self._replace({**self.entries, test_type_id: ready})

    def fail_load(self, test_type_id: str, generation: int) -> "PanelState":
        if not self.is_current(test_type_id, generation):
            logger.warning(
                f"Discarding stale load failure for test type {test_type_id} "
                f"(generation {generation})"
            )
            return self
        failed = self.entries[test_type_id].model_copy(
            update={"status": LoadStatus.ERROR, "parameters": {}}
        )
        return self._replace({**self.entries, test_type_id: failed})

    # ---------- helpers ----------

    def _update_parameter(
        self,
        test_type_id: str,
        parameter_id: str,
        changes: dict,
    ) -> "PanelState":
        entry = self.entries.get(test_type_id)
        if entry is None or parameter_id not in entry.parameters:
            return self
        parameter = entry.parameters[parameter_id].model_copy(update=changes)
        updated = entry.model_copy(
            update={"parameters": {**entry.parameters, parameter_id: parameter}}
        )
        return self._replace({**self.entries, test_type_id: updated})

    def _replace(
        self,
        entries: dict[str, SelectionEntry],
        clock: int | None = None,
    ) -> "PanelState":
        return self.model_copy(
            update={
                "entries": entries,
                "clock": self.clock if clock is None else clock,
            }
        )


# ---------- responses ----------


class ParameterEntryResponse(BaseModel):
    parameter_id: str
    name: str
    unit: str | None = None
    reference_range: str | None = None
    value: str
    visibility: Visibility
    origin_value_id: str | None = None
    range_status: RangeStatus


class SelectionEntryResponse(BaseModel):
    test_type_id: str
    test_type_name: str | None = None
    status: LoadStatus
    parameters: list[ParameterEntryResponse]


class ResultFormResponse(BaseModel):
    form_id: str
    result_id: str | None = Field(None, description="Set when editing a result")
    header: HeaderFields
    selections: list[SelectionEntryResponse]
    load_flags: dict[str, LoadStatus]
    messages: list[str] = Field(default_factory=list)
    error: str | None = None


class OpenResultFormRequest(BaseModel):
    patient_id: str | None = Field(None, description="Patient of a new result")
    result_id: str | None = Field(None, description="Existing result to edit")


class ParameterValueRequest(BaseModel):
    value: str


class SubmitResultResponse(BaseModel):
    result_id: str
