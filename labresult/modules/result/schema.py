from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ResultStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class RangeStatus(str, Enum):
    IN_RANGE = "in-range"
    OUT_OF_RANGE = "out-of-range"
    INDETERMINATE = "indeterminate"


class HeaderFields(BaseModel):
    """Header fields as entered on the form, validated at submit time."""

    patient_id: str | None = None
    doctor_id: str | None = None
    result_date: datetime | None = None
    # free text, the clerk may type "1 500,50"
    total_price: str | None = None
    amount_paid: str | None = None


class StoredValue(BaseModel):
    id: str
    patient_result_id: str
    test_parameter_id: str
    test_type_id: str | None = None
    value: str

    model_config = ConfigDict(frozen=True)


class ValueInsert(BaseModel):
    parameter_id: str
    value: str

    model_config = ConfigDict(frozen=True)


class ValueUpdate(BaseModel):
    id: str
    value: str

    model_config = ConfigDict(frozen=True)


class ReconcilePlan(BaseModel):
    to_insert: list[ValueInsert] = Field(default_factory=list)
    to_update: list[ValueUpdate] = Field(default_factory=list)
    to_delete: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @property
    def is_empty(self) -> bool:
        return not (self.to_insert or self.to_update or self.to_delete)


class ResultHeaderResponse(BaseModel):
    id: str = Field(..., description="Identity of the result header")
    patient_id: str
    doctor_id: str
    result_date: datetime
    status: ResultStatus
    total_price: float | None = None
    amount_paid: float | None = None


class ValueRangeCheckResponse(BaseModel):
    value_id: str
    test_parameter_id: str
    parameter_name: str | None = None
    value: str
    reference_range: str | None = None
    status: RangeStatus


class UpdateResultStatusRequest(BaseModel):
    status: ResultStatus
