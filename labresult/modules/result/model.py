from datetime import datetime

from beanie import Document, PydanticObjectId
from pydantic import Field

from labresult.modules.result.schema import ResultStatus


class PatientResult(Document):
    patient_id: str
    doctor_id: str
    result_date: datetime
    status: ResultStatus = ResultStatus.PENDING
    total_price: float | None = None
    amount_paid: float | None = None
    # set by the form session that created the header, lets a retried
    # submission find the header it already inserted
    submission_key: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime | None = None

    class Settings:
        name = "patient_result"
        indexes = ["patient_id", "submission_key"]

    class Config:
        json_encoders = {
            PydanticObjectId: str,
        }


class ResultValue(Document):
    patient_result_id: str
    test_parameter_id: str
    value: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime | None = None

    class Settings:
        name = "result_value"
        indexes = ["patient_result_id", "test_parameter_id"]

    class Config:
        json_encoders = {
            PydanticObjectId: str,
        }
